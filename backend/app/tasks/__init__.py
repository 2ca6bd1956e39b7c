from app.celery_app import celery_app
from app.tasks.notifications import send_insight_task, send_bulk_task

__all__ = [
    "celery_app",
    "send_insight_task",
    "send_bulk_task",
]

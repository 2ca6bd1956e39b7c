from celery import Celery
from kombu import Queue

from app.core.config import settings

celery_app = Celery(
    "autoserve_notifications",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "app.tasks.notifications",
    ],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=30 * 60,
    worker_prefetch_multiplier=1,
    task_default_queue="default",
    task_queues=[
        Queue("default", routing_key="default"),
        Queue("notifications", routing_key="notifications"),
    ],
    task_routes={
        "app.tasks.notifications.*": {"queue": "notifications"},
    },
)


if __name__ == "__main__":
    celery_app.start()

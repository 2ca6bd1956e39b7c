"""
Health check endpoints for monitoring and load balancers.

PostgreSQL holds the delivery ledger and link-open counters, so it gates
both health and readiness. Redis only backs the analytics cache: when it is
down the service reports "degraded" and keeps serving. Channel entries say
whether each transport has the credentials it needs to send.
"""

from typing import Any, Dict

from fastapi import APIRouter, HTTPException
from sqlalchemy import text

from app.core.config import settings
from app.db.postgres import async_session_maker
from app.db.redis import redis_client
from app.services.channels import Channel

router = APIRouter(prefix="/health", tags=["Health"])


def channel_checks() -> Dict[str, Dict[str, Any]]:
    """Configuration state per channel. Nothing is sent to the providers."""
    twilio_ready = bool(settings.twilio_account_sid and settings.twilio_auth_token)
    senders = {
        Channel.EMAIL: (bool(settings.smtp_host), settings.mail_from_email),
        Channel.SMS: (twilio_ready and bool(settings.twilio_phone_number), settings.twilio_phone_number),
        Channel.WHATSAPP: (twilio_ready and bool(settings.whatsapp_sender), settings.whatsapp_sender),
    }
    return {
        channel.value: {"status": "configured" if ready else "not_configured", "sender": sender or None}
        for channel, (ready, sender) in senders.items()
    }


async def _ping_postgres() -> None:
    async with async_session_maker() as session:
        await session.execute(text("SELECT 1"))


@router.get("")
async def health_check():
    """
    Health of the ledger database, the analytics cache and channel setup.

    HTTP Status Codes:
        - 200: healthy, or degraded (cache unavailable)
        - 503: PostgreSQL unreachable
    """
    health_status = {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {},
        "channels": channel_checks(),
    }

    try:
        await _ping_postgres()
        health_status["checks"]["postgres"] = {
            "status": "healthy",
            "host": settings.postgres_host,
            "database": settings.postgres_db,
        }
    except Exception as e:
        health_status["checks"]["postgres"] = {"status": "unhealthy", "error": str(e)}
        health_status["status"] = "unhealthy"

    if await redis_client.ping():
        health_status["checks"]["redis"] = {"status": "healthy", "host": settings.redis_host}
    else:
        health_status["checks"]["redis"] = {"status": "unhealthy", "error": "Redis ping failed"}
        if health_status["status"] == "healthy":
            health_status["status"] = "degraded"

    if health_status["status"] == "unhealthy":
        raise HTTPException(status_code=503, detail=health_status)

    return health_status


@router.get("/ready")
async def readiness_check():
    """Ready once the ledger database answers and at least one channel can send."""
    channels = channel_checks()
    configured = [name for name, check in channels.items() if check["status"] == "configured"]

    try:
        await _ping_postgres()
    except Exception as e:
        raise HTTPException(status_code=503, detail={"status": "not_ready", "error": str(e)})

    if not configured:
        raise HTTPException(status_code=503, detail={"status": "not_ready", "error": "No channel configured"})

    return {"status": "ready", "channels": configured}


@router.get("/live")
async def liveness_check():
    """Liveness check: the process is up and serving requests."""
    return {"status": "alive", "version": settings.app_version}

"""
AutoServe CRM Notifications - FastAPI Backend

Main application entry point.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.core.config import settings
from app.db.postgres import init_db, close_db
from app.db.redis import redis_client
from app.middleware.rate_limit import setup_rate_limiting
from app.services.twilio_client import twilio_client

# Import routers
from app.api.v1 import analytics_api, health, notifications, source_metrics, tracking

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    logger.info("Starting %s v%s", settings.app_name, settings.app_version)
    logger.info("Environment: %s", settings.environment)
    logger.info("PostgreSQL: %s:%s", settings.postgres_host, settings.postgres_port)

    # Validate production settings
    try:
        settings.validate_production_settings()
        logger.info("Production settings validated successfully")
    except ValueError as e:
        if settings.environment == "production":
            logger.error("CRITICAL: %s", e)
            raise  # Stop startup in production with invalid config
        else:
            logger.warning("Production settings validation: %s", e)

    # Initialize PostgreSQL
    try:
        await init_db()
        logger.info("PostgreSQL connected and tables created")
    except Exception as e:
        logger.error("PostgreSQL initialization failed: %s", e)

    if settings.twilio_account_sid and settings.twilio_auth_token:
        logger.info("Twilio configured - SMS and WhatsApp sends enabled")
    else:
        logger.warning("TWILIO_ACCOUNT_SID/TWILIO_AUTH_TOKEN not set - SMS and WhatsApp sends will fail")

    if settings.openrouter_api_key:
        logger.info("OpenRouter API key configured - generated message text enabled")
    else:
        logger.warning("OPENROUTER_API_KEY not set - messages will use the fixed template")

    yield

    # Shutdown
    await twilio_client.close()
    await redis_client.close()
    logger.info("Redis disconnected")
    await close_db()
    logger.info("PostgreSQL disconnected")
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    AutoServe CRM Notifications API

    Sends AI-written service insight messages to customers over email, SMS
    and WhatsApp and tracks delivery and engagement.

    ## Features

    - **Send**: single and bulk insight sends per channel
    - **Webhooks**: Twilio delivery status callbacks
    - **Tracking**: email pixel and customer-view link opens
    - **Analytics**: summary, per-telecaller, per-customer and time series views

    ## Authentication

    Operator endpoints take a JWT bearer token:
    `Authorization: Bearer <token>`
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
allowed_origins = [settings.frontend_url]
if settings.environment == "development":
    allowed_origins.extend([
        "http://localhost:3000",
        "http://localhost:5173",  # Vite default
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ])

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Requested-With", "Accept"],
)

# Rate limiting
setup_rate_limiting(app)


# Root endpoint
@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


# Include routers
app.include_router(health.router)  # Health check at /health (no API prefix)
for channel_router in notifications.routers:
    app.include_router(channel_router, prefix=settings.api_v1_prefix)
app.include_router(tracking.router, prefix=settings.api_v1_prefix)
app.include_router(source_metrics.router, prefix=settings.api_v1_prefix)
app.include_router(analytics_api.router, prefix=settings.api_v1_prefix)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )

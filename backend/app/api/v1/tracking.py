"""
Public email tracking pixel.

Unauthenticated because it is embedded in outgoing emails. The response is
always the 1x1 GIF, whatever happens while recording the open.

Routes:
    GET  /track/{dispatch_id}     - 1x1 transparent pixel (stamps seen, counts an email open)
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.v1.common import parse_id
from app.core.exceptions import NotificationError
from app.db.postgres import get_db_session
from app.middleware.rate_limit import limiter
from app.services.tracking_service import link_tracker

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/track", tags=["Tracking"])

# Transparent 1x1 GIF pixel (43 bytes)
TRACKING_PIXEL = (
    b"\x47\x49\x46\x38\x39\x61\x01\x00\x01\x00\x80\x00\x00"
    b"\xff\xff\xff\x00\x00\x00\x21\xf9\x04\x00\x00\x00\x00"
    b"\x00\x2c\x00\x00\x00\x00\x01\x00\x01\x00\x00\x02\x02"
    b"\x44\x01\x00\x3b"
)


def pixel_response() -> Response:
    return Response(
        content=TRACKING_PIXEL,
        media_type="image/gif",
        headers={"Cache-Control": "no-store, no-cache, must-revalidate, max-age=0"},
    )


@router.get("/{dispatch_id}")
@limiter.exempt
async def track_email_open(
    dispatch_id: str,
    session: AsyncSession = Depends(get_db_session),
):
    """Record an email open and return a 1x1 transparent pixel.

    Embedded in emails as: <img src="{pixel_url}" width="1" height="1" />
    """
    try:
        await link_tracker.track_pixel(session, parse_id(dispatch_id, "email ID"))
    except NotificationError as exc:
        logger.info("Pixel hit for %s: %s", dispatch_id, exc.message)
    except Exception as exc:
        logger.error("Error recording open for email %s: %s", dispatch_id, exc)

    return pixel_response()

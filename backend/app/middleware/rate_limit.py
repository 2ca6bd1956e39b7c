"""
Rate limiting middleware using slowapi.
Operators are limited per token user, link opens per client address.
Twilio callbacks and the email pixel are exempt.
"""

from fastapi import HTTPException, Request
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from app.core.config import settings


def _get_user_key(request: Request) -> str:
    """Extract user ID from JWT for per-user rate limiting."""
    auth = request.headers.get("Authorization", "")
    if auth.startswith("Bearer "):
        from app.core.security import decode_token

        try:
            token_data = decode_token(auth[7:])
            return f"user:{token_data.user_id}"
        except HTTPException:
            pass
    return get_remote_address(request)


limiter = Limiter(
    key_func=_get_user_key,
    default_limits=["300/minute"],
    storage_uri=settings.redis_url if settings.environment == "production" else "memory://",
)


def setup_rate_limiting(app):
    """Configure rate limiting for the FastAPI app."""
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)

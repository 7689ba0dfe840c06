"""
Rate Limiter Configuration

Search and booking endpoints hit the upstream provider on every call, so
they are throttled per actor (or per client IP for anonymous searches).
Storage is configurable (memory:// for a single instance, redis:// for many).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from fastapi import Request

from ..config import settings


def get_rate_limit_key(request: Request) -> str:
    """Key by forwarded actor id, then real client IP behind the gateway"""
    actor_id = request.headers.get("X-Actor-Id")
    if actor_id:
        return f"actor:{actor_id}"

    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return get_remote_address(request)


limiter = Limiter(
    key_func=get_rate_limit_key,
    storage_uri=settings.rate_limit_storage_uri,
    default_limits=["100/minute"]
)


RATE_LIMITS = {
    "search": settings.rate_limit_search,
    "booking_create": settings.rate_limit_booking,
    "booking_cancel": settings.rate_limit_booking,
}


def get_rate_limit(operation: str) -> str:
    """Get rate limit for a specific operation."""
    return RATE_LIMITS.get(operation, "100/minute")

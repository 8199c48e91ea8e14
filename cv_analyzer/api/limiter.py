"""Rate limiter shared by the app and routes."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from cv_analyzer.config import settings


def user_or_ip(request: Request) -> str:
    """Throttle authenticated callers per user, everyone else per address."""
    user_id = getattr(request.state, "user_id", None)
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


# Sliding window; point RATE_LIMIT_STORAGE_URI at redis:// to share counters across instances
limiter = Limiter(
    key_func=user_or_ip,
    strategy="moving-window",
    storage_uri=settings.rate_limit_storage_uri,
)


def upload_rate_limit() -> str:
    return settings.upload_rate_limit

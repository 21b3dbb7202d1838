"""
API rate limiting using slowapi (opt-in via RATE_LIMIT_ENABLED=true).

Callers are keyed by their X-API-KEY, or by client IP in dev mode. The
cron trigger is exempt: it is authenticated by the cron secret and
called by the scheduler only.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from grantsync.config.settings import get_settings


def rate_limit_key(request: Request) -> str:
    return request.headers.get("X-API-KEY") or get_remote_address(request)


def create_limiter() -> Limiter:
    settings = get_settings()
    return Limiter(
        key_func=rate_limit_key,
        default_limits=[settings.rate_limit_default],
        storage_uri=settings.rate_limit_storage_uri,
    )


limiter = create_limiter()

"""
Request timeout middleware.

Wraps each request in an asyncio timeout so a stuck store cannot hold a
worker indefinitely. Returns 504 in the error envelope on expiration.

Health checks are excluded, as is the cron sync: it carries its own
deadline and reports unfinished registries instead of dropping the run.
"""

import asyncio

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from grantsync.api.errors import error_response

logger = structlog.get_logger(__name__)

_EXCLUDED_PREFIXES = ("/health", "/cron/")


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Enforce a maximum request duration, returning 504 on timeout."""

    def __init__(
        self,
        app,
        timeout_seconds: float = 300.0,
        excluded_prefixes: tuple[str, ...] = _EXCLUDED_PREFIXES,
    ):
        super().__init__(app)
        self.timeout_seconds = timeout_seconds
        self.excluded_prefixes = excluded_prefixes

    async def dispatch(self, request: Request, call_next):
        if any(request.url.path.startswith(p) for p in self.excluded_prefixes):
            return await call_next(request)

        try:
            async with asyncio.timeout(self.timeout_seconds):
                return await call_next(request)
        except TimeoutError:
            logger.warning(
                "Request timed out",
                path=request.url.path,
                method=request.method,
                timeout_seconds=self.timeout_seconds,
            )
            return error_response(
                504,
                "TIMEOUT",
                "Request timed out",
                {"timeout_seconds": self.timeout_seconds},
            )

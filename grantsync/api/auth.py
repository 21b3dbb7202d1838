"""
API authentication.

- ``verify_api_key``: X-API-KEY header for catalog and matching routes
  (open when API_KEYS is unset).
- ``verify_cron_secret``: ``Authorization: Bearer <CRON_SECRET>`` for the
  scheduler-facing sync trigger.
"""

import secrets

from fastapi import Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from grantsync.api.errors import APIError
from grantsync.config.settings import get_settings

# API key header scheme
api_key_header = APIKeyHeader(name="X-API-KEY", auto_error=False)


async def verify_api_key(api_key: str | None = Security(api_key_header)) -> str:
    """
    Verify API key from X-API-KEY header.

    Returns:
        The validated API key

    Raises:
        HTTPException: If API key is missing or invalid
    """
    settings = get_settings()

    # If no API keys configured, allow all requests (dev mode)
    if not settings.api_keys:
        return "dev-mode"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key. Provide X-API-KEY header.",
        )

    valid_keys = [k.strip() for k in settings.api_keys.split(",") if k.strip()]
    if not valid_keys or api_key not in valid_keys:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key


async def verify_cron_secret(authorization: str | None = Header(default=None)) -> None:
    """
    Verify the scheduler's bearer token against CRON_SECRET.

    Raises:
        APIError: 500 CRON_SECRET_NOT_CONFIGURED if no secret is set,
            401 UNAUTHORIZED if the token is missing or wrong
    """
    settings = get_settings()

    if not settings.cron_secret:
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "CRON_SECRET_NOT_CONFIGURED",
            "CRON_SECRET is not configured",
        )

    expected = f"Bearer {settings.cron_secret}"
    if authorization is None or not secrets.compare_digest(
        authorization.encode(), expected.encode()
    ):
        raise APIError(
            status.HTTP_401_UNAUTHORIZED,
            "UNAUTHORIZED",
            "Invalid or missing cron secret",
        )

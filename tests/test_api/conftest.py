"""Shared fixtures for API tests."""

from unittest.mock import AsyncMock

import pytest

from grantsync.api.auth import verify_api_key
from grantsync.api.dependencies import get_database


@pytest.fixture
def healthy_database():
    db = AsyncMock()
    db.health_check = AsyncMock(return_value=True)
    return db


@pytest.fixture
def override_auth():
    """Dependency overrides that bypass the X-API-KEY check."""
    return {verify_api_key: lambda: "test-key"}


@pytest.fixture
def base_overrides(override_auth, healthy_database):
    overrides = dict(override_auth)
    overrides[get_database] = lambda: healthy_database
    return overrides

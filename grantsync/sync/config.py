"""Sync pipeline configuration.

All settings can be overridden via ``SYNC_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class SyncConfig(BaseSettings):
    """Configuration for the multi-source sync pipeline."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        case_sensitive=False,
        extra="ignore",
    )

    page_size: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Records requested per page from each registry",
    )
    max_pages: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Page cap per registry per run",
    )
    concurrency: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Registries synced in parallel (1 = serial, in list order)",
    )
    incremental: bool = Field(
        default=False,
        description="Only request records registered after the last sync",
    )
    deadline_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Wall-clock budget for one run; unfinished sources fail",
    )

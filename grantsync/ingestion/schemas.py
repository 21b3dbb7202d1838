"""
Canonical program schema for the catalog.

Every source connector's raw records are normalized into ``Program``.
The repository, matching engine and API all depend on these field names.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class DataSource(str, Enum):
    """Known external program registries."""

    BIZINFO = "기업마당"
    KSTARTUP = "K-Startup"
    KOCCA_PIMS = "KOCCA-PIMS"
    KOCCA_FINANCE = "KOCCA-Finance"
    SEOUL_TP = "서울테크노파크"
    GYEONGGI_TP = "경기테크노파크"


# Display alias covering both KOCCA registries
KOCCA_ALIAS = "한국콘텐츠진흥원"
KOCCA_SOURCES = (DataSource.KOCCA_PIMS.value, DataSource.KOCCA_FINANCE.value)


def expand_data_source(value: str) -> list[str]:
    """Resolve a data source filter, expanding the KOCCA alias."""
    if value == KOCCA_ALIAS:
        return list(KOCCA_SOURCES)
    return [value]


def display_source(data_source: str) -> str:
    """Group KOCCA registries under one display name."""
    return KOCCA_ALIAS if data_source in KOCCA_SOURCES else data_source


class Program(BaseModel):
    """
    One listing from exactly one external registry.

    (data_source, external_id) is the natural key. ``id`` is assigned by the
    catalog store on first insert and stays stable across re-syncs.
    """

    id: str | None = Field(default=None, description="Catalog id (UUID), set by the store")
    data_source: str = Field(..., description="Registry the listing came from")
    external_id: str = Field(..., min_length=1, description="Source-native key")

    title: str = Field(..., description="Announcement title")
    description: str | None = None
    category: str | None = None

    target_audience: list[str] = Field(default_factory=list)
    target_location: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)

    budget_range: str | None = None
    deadline: datetime | None = None
    source_url: str | None = None
    attachment_url: str | None = None
    registered_at: datetime = Field(default_factory=_utc_now)
    start_date: datetime | None = None
    end_date: datetime | None = None

    raw_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Verbatim source payload",
    )
    sync_status: str = "active"

    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("external_id", mode="before")
    @classmethod
    def coerce_external_id(cls, v: Any) -> str:
        """Registries send numeric ids for some sources."""
        return str(v).strip() if v is not None else v

    @field_validator("registered_at", "deadline", "start_date", "end_date")
    @classmethod
    def ensure_timezone(cls, v: datetime | None) -> datetime | None:
        """Treat naive datetimes as UTC."""
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    def summary(self) -> dict[str, Any]:
        """Compact view embedded in matching results."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "target_audience": self.target_audience,
            "target_location": self.target_location,
            "keywords": self.keywords,
            "budget_range": self.budget_range,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "source_url": self.source_url,
            "data_source": self.data_source,
        }

"""
Request and response models for the grantsync API.

Successful responses use the envelope ``{success, data, metadata}``.
Request bodies, query parameters and every response field use the camelCase
names the platform front end works with; Python code constructs the models
by their snake_case field names.
"""

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorDetail(BaseModel):
    code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Error message")
    details: Any = Field(default=None, description="Extra context, e.g. validation issues")


class ErrorResponse(BaseModel):
    """Response model for errors."""

    success: bool = False
    error: ErrorDetail


# Health


class ComponentHealth(CamelModel):
    """Health status for an individual infrastructure component."""

    status: str = Field(..., description="Component status: healthy or unhealthy")
    latency_ms: float | None = Field(default=None, description="Check latency in milliseconds")
    details: dict[str, Any] | None = Field(default=None, description="Additional details")


class HealthResponse(CamelModel):
    """Response model for health check."""

    status: str = Field(
        ...,
        description="Overall service status: healthy, degraded, or unhealthy",
    )
    components: dict[str, ComponentHealth] = Field(
        default_factory=dict,
        description="Per-component health",
    )
    sources_configured: dict[str, bool] = Field(
        default_factory=dict,
        description="Which registries have credentials configured",
    )
    version: str = Field(default="0.1.0", description="Service version")


# Sync


class SourceSyncItem(CamelModel):
    data_source: str
    success: bool
    count: int = 0
    skipped: int = 0
    error: str | None = None
    duration_seconds: float = 0.0


class SyncStatsData(CamelModel):
    total: int = Field(..., description="Sources attempted")
    succeeded: int = Field(..., description="Sources that completed")
    failed: int = Field(..., description="Sources that failed")
    program_count: int = Field(..., description="Programs upserted across sources")
    results: list[SourceSyncItem] = Field(default_factory=list)


class SyncResponse(CamelModel):
    """Response for the cron sync trigger."""

    success: bool = True
    data: SyncStatsData


class SyncMetadataItem(CamelModel):
    data_source: str
    last_synced_at: str | None = None
    last_success_at: str | None = None
    sync_count: int = 0
    last_result: str | None = None


class SyncStatusMetadata(CamelModel):
    total: int


class SyncStatusResponse(CamelModel):
    success: bool = True
    data: list[SyncMetadataItem]
    metadata: SyncStatusMetadata


# Matching


class MatchingRequest(BaseModel):
    """Body of POST /matching."""

    model_config = ConfigDict(populate_by_name=True)

    customer_id: uuid.UUID = Field(..., alias="customerId", description="Customer UUID")
    min_score: int | None = Field(
        default=None,
        alias="minScore",
        ge=0,
        le=100,
        description="Minimum total score (default 30)",
    )
    max_results: int | None = Field(
        default=None,
        alias="maxResults",
        ge=1,
        le=500,
        description="Maximum results (default 50)",
    )
    force_refresh: bool = Field(
        default=False,
        alias="forceRefresh",
        description="Recompute even if stored results exist",
    )


class ProgramSummary(CamelModel):
    id: str
    title: str
    description: str | None = None
    category: str | None = None
    target_audience: list[str] = Field(default_factory=list)
    target_location: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    budget_range: str | None = None
    deadline: str | None = None
    source_url: str | None = None
    data_source: str


class MatchingResultItem(CamelModel):
    customer_id: str
    program_id: str
    score: int = Field(..., ge=0, le=100)
    industry_score: int = 0
    location_score: int = 0
    keyword_score: int = 0
    matched_industry: bool = False
    matched_location: bool = False
    matched_keywords: list[str] = Field(default_factory=list)
    created_at: str | None = None
    program: ProgramSummary | None = None


class MatchingMetadata(CamelModel):
    total: int
    limit: int | None = None


class MatchingResponse(CamelModel):
    success: bool = True
    data: list[MatchingResultItem]
    metadata: MatchingMetadata


# Programs


class ProgramItem(CamelModel):
    id: str
    data_source: str
    external_id: str
    title: str
    description: str | None = None
    category: str | None = None
    target_audience: list[str] = Field(default_factory=list)
    target_location: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    budget_range: str | None = None
    deadline: str | None = None
    source_url: str | None = None
    attachment_url: str | None = None
    registered_at: str | None = None
    start_date: str | None = None
    end_date: str | None = None


class ProgramDetail(ProgramItem):
    raw_data: dict[str, Any] = Field(
        default_factory=dict, description="Registry record as fetched",
    )


class ProgramDetailResponse(CamelModel):
    success: bool = True
    data: ProgramDetail
    metadata: None = None


class ProgramListMetadata(CamelModel):
    total: int
    page: int
    limit: int
    source_distribution: dict[str, int] = Field(
        default_factory=dict,
        description="Active programs per registry (KOCCA boards merged)",
    )


class ProgramListResponse(CamelModel):
    success: bool = True
    data: list[ProgramItem]
    metadata: ProgramListMetadata

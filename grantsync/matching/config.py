"""Matching engine configuration.

Score weights and request defaults. All settings can be overridden via
``MATCHING_*`` environment variables.
"""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchingConfig(BaseSettings):
    """Configuration for customer/program scoring."""

    model_config = SettingsConfigDict(
        env_prefix="MATCHING_",
        case_sensitive=False,
        extra="ignore",
    )

    industry_weight: int = Field(
        default=30,
        ge=0,
        le=100,
        description="Points for an industry match",
    )
    location_weight: int = Field(
        default=30,
        ge=0,
        le=100,
        description="Points for a location match",
    )
    keyword_base_weight: int = Field(
        default=10,
        ge=0,
        le=100,
        description="Points per matched keyword",
    )
    keyword_preferred_weight: int = Field(
        default=15,
        ge=0,
        le=100,
        description="Extra points per matched preferred keyword",
    )
    keyword_max: int = Field(
        default=40,
        ge=0,
        le=100,
        description="Ceiling on the keyword component",
    )
    default_min_score: int = Field(
        default=30,
        ge=0,
        le=100,
        description="Minimum total score kept when the caller gives none",
    )
    default_max_results: int = Field(
        default=50,
        ge=1,
        le=500,
        description="Result cap when the caller gives none",
    )

    @model_validator(mode="after")
    def check_total(self) -> "MatchingConfig":
        total = self.industry_weight + self.location_weight + self.keyword_max
        if total > 100:
            raise ValueError(
                f"industry + location + keyword_max must not exceed 100 (got {total})"
            )
        return self

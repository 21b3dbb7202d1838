"""Schema definitions for matching.

``MatchingResult`` maps 1:1 to the ``matching_results`` table, one row per
(customer, program). ``CustomerProfile`` is read from the externally-owned
``customers`` table and never written. ``MatchingRun`` maps to the
``matching_runs`` table, one row per customer.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass
class CustomerProfile:
    """Scoring inputs for one customer."""

    id: str
    industry: str | None = None
    location: str | None = None
    challenges: list[str] = field(default_factory=list)
    goals: list[str] = field(default_factory=list)
    preferred_keywords: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ScoreBreakdown:
    """Per-component score for one (customer, program) pair.

    Attributes:
        industry_score: 0 or the industry weight.
        location_score: 0 or the location weight.
        keyword_score: 0 up to the keyword ceiling.
        matched_keywords: Program keywords found in the customer's needs,
            in program keyword order.
        preferred_keywords: The subset also found in preferred keywords.
    """

    industry_score: int
    location_score: int
    keyword_score: int
    matched_keywords: tuple[str, ...] = ()
    preferred_keywords: tuple[str, ...] = ()

    @property
    def total(self) -> int:
        return self.industry_score + self.location_score + self.keyword_score

    @property
    def matched_industry(self) -> bool:
        return self.industry_score > 0

    @property
    def matched_location(self) -> bool:
        return self.location_score > 0


@dataclass
class MatchingResult:
    """A scored (customer, program) pair.

    ``program`` carries a compact program summary on reads; it is not
    persisted with the row.
    """

    customer_id: str
    program_id: str
    score: int
    industry_score: int = 0
    location_score: int = 0
    keyword_score: int = 0
    matched_industry: bool = False
    matched_location: bool = False
    matched_keywords: list[str] = field(default_factory=list)
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    program: dict[str, Any] | None = None
    # Tie-break key for ranking; not persisted
    registered_at: datetime | None = None

    def __post_init__(self) -> None:
        if not (0 <= self.score <= 100):
            raise ValueError(f"Invalid score {self.score}. Must be between 0 and 100.")

    def to_dict(self) -> dict[str, Any]:
        data = {
            "customer_id": self.customer_id,
            "program_id": self.program_id,
            "score": self.score,
            "industry_score": self.industry_score,
            "location_score": self.location_score,
            "keyword_score": self.keyword_score,
            "matched_industry": self.matched_industry,
            "matched_location": self.matched_location,
            "matched_keywords": list(self.matched_keywords),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if self.program is not None:
            data["program"] = self.program
        return data


@dataclass
class MatchingRun:
    """Marker for the last computation of a customer's result set.

    Written in the same transaction as the result rows, so a customer whose
    last run produced nothing still has a current (empty) set.

    Attributes:
        min_score: Threshold the stored set was computed with.
        max_results: Cap the stored set was computed with.
        result_count: Rows written by that run.
    """

    customer_id: str
    min_score: int
    max_results: int
    result_count: int = 0
    computed_at: datetime | None = None

    def covers(self, min_score: int, max_results: int) -> bool:
        """Whether the stored set can answer a request with these bounds."""
        if min_score < self.min_score:
            return False
        # A set cut off at its cap may be missing rows a larger cap would keep
        return max_results <= self.max_results or self.result_count < self.max_results

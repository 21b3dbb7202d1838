"""Customer/program matching: scoring, caching and result storage."""

from grantsync.matching.config import MatchingConfig
from grantsync.matching.engine import MatchingEngine
from grantsync.matching.repository import CustomerRepository, MatchingResultRepository
from grantsync.matching.schemas import CustomerProfile, MatchingResult, ScoreBreakdown

__all__ = [
    "CustomerProfile",
    "CustomerRepository",
    "MatchingConfig",
    "MatchingEngine",
    "MatchingResult",
    "MatchingResultRepository",
    "ScoreBreakdown",
]

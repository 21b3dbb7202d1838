"""Rule-based customer/program scoring.

Scores a customer against a program on three components:
  total = industry (0 or 30) + location (0 or 30) + keyword (0..40)

Keyword component:
  min(base * matched + preferred * preferred_matched, keyword_max)

where a program keyword "matches" when some customer keyword (challenges,
goals or preferred keywords) contains it case-insensitively, and is also
"preferred" when a preferred keyword contains it. A single preferred match
therefore earns base + preferred (10 + 15 = 25 with default weights).

All functions are pure; the engine does the I/O.
"""

from datetime import datetime, timezone

from grantsync.ingestion.schemas import Program
from grantsync.matching.config import MatchingConfig
from grantsync.matching.schemas import CustomerProfile, MatchingResult, ScoreBreakdown

# ── Constants ────────────────────────────────────────────

ALL_INDUSTRIES = "전체"
NATIONWIDE = "전국"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ── Component matchers ───────────────────────────────────


def _contains_any(needle: str, haystack: list[str]) -> bool:
    needle = needle.lower()
    return any(needle in entry.lower() for entry in haystack)


def match_industry(industry: str | None, target_audience: list[str]) -> bool:
    """True when the program targets the customer's industry (or everyone)."""
    if not industry or not target_audience:
        return False
    if ALL_INDUSTRIES in target_audience:
        return True
    return _contains_any(industry, target_audience)


def match_location(location: str | None, target_location: list[str]) -> bool:
    """True when the program covers the customer's region (or is nationwide)."""
    if not location or not target_location:
        return False
    if NATIONWIDE in target_location:
        return True
    return _contains_any(location, target_location)


def match_keywords(
    customer: CustomerProfile,
    program_keywords: list[str],
) -> tuple[list[str], list[str]]:
    """
    Find program keywords that appear in the customer's stated needs.

    Returns:
        (matched, preferred_matched), both in program keyword order.
        preferred_matched is a subset of matched.
    """
    needs = [*customer.challenges, *customer.goals, *customer.preferred_keywords]
    needs_lower = [n.lower() for n in needs if n]
    preferred_lower = [p.lower() for p in customer.preferred_keywords if p]

    matched: list[str] = []
    preferred: list[str] = []

    for keyword in dict.fromkeys(k for k in program_keywords if k):
        lowered = keyword.lower()
        if any(lowered in need for need in needs_lower):
            matched.append(keyword)
            if any(lowered in p for p in preferred_lower):
                preferred.append(keyword)

    return matched, preferred


# ── Scoring ──────────────────────────────────────────────


def calculate_score(
    customer: CustomerProfile,
    program: Program,
    config: MatchingConfig | None = None,
) -> ScoreBreakdown:
    """Score one program for one customer."""
    config = config or MatchingConfig()

    matched, preferred = match_keywords(customer, program.keywords)
    keyword_score = min(
        config.keyword_base_weight * len(matched)
        + config.keyword_preferred_weight * len(preferred),
        config.keyword_max,
    )

    return ScoreBreakdown(
        industry_score=(
            config.industry_weight
            if match_industry(customer.industry, program.target_audience)
            else 0
        ),
        location_score=(
            config.location_weight
            if match_location(customer.location, program.target_location)
            else 0
        ),
        keyword_score=keyword_score,
        matched_keywords=tuple(matched),
        preferred_keywords=tuple(preferred),
    )


def rank_programs(
    customer: CustomerProfile,
    programs: list[Program],
    min_score: int,
    max_results: int,
    config: MatchingConfig | None = None,
    now: datetime | None = None,
) -> list[MatchingResult]:
    """
    Score every program, keep those at or above ``min_score``, and rank them.

    Sorted by score descending, then by more recent ``registered_at``.
    Returns at most ``max_results`` results.
    """
    config = config or MatchingConfig()
    created_at = now or datetime.now(timezone.utc)
    results: list[MatchingResult] = []

    for program in programs:
        if program.id is None:
            continue

        breakdown = calculate_score(customer, program, config)
        if breakdown.total < min_score:
            continue

        results.append(MatchingResult(
            customer_id=customer.id,
            program_id=program.id,
            score=breakdown.total,
            industry_score=breakdown.industry_score,
            location_score=breakdown.location_score,
            keyword_score=breakdown.keyword_score,
            matched_industry=breakdown.matched_industry,
            matched_location=breakdown.matched_location,
            matched_keywords=list(breakdown.matched_keywords),
            created_at=created_at,
            program=program.summary(),
            registered_at=program.registered_at,
        ))

    results.sort(
        key=lambda r: (r.score, r.registered_at or _EPOCH),
        reverse=True,
    )
    return results[:max_results]

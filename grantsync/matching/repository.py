"""Repositories for matching results and customer profiles.

``MatchingResultRepository`` owns the ``matching_results`` table: exactly one
current row per (customer, program). Recomputation replaces a customer's
whole set in one transaction, serialized across processes with a
transaction-scoped advisory lock on the customer id. The same transaction
upserts the customer's ``matching_runs`` marker, which is what makes an
empty result set a cached one.

``CustomerRepository`` reads the externally-owned ``customers`` table.
"""

import logging
from typing import Any

from grantsync.matching.schemas import CustomerProfile, MatchingResult, MatchingRun
from grantsync.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS matching_results (
    customer_id      UUID NOT NULL,
    program_id       UUID NOT NULL REFERENCES programs(id) ON DELETE CASCADE,
    score            INTEGER NOT NULL CHECK (score BETWEEN 0 AND 100),
    industry_score   INTEGER NOT NULL DEFAULT 0,
    location_score   INTEGER NOT NULL DEFAULT 0,
    keyword_score    INTEGER NOT NULL DEFAULT 0,
    matched_industry BOOLEAN NOT NULL DEFAULT FALSE,
    matched_location BOOLEAN NOT NULL DEFAULT FALSE,
    matched_keywords TEXT[] NOT NULL DEFAULT '{}',
    created_at       TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    PRIMARY KEY (customer_id, program_id)
);

CREATE INDEX IF NOT EXISTS idx_matching_results_customer_score
    ON matching_results(customer_id, score DESC);

CREATE TABLE IF NOT EXISTS matching_runs (
    customer_id  UUID PRIMARY KEY,
    min_score    INTEGER NOT NULL,
    max_results  INTEGER NOT NULL,
    result_count INTEGER NOT NULL DEFAULT 0,
    computed_at  TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

_INSERT_SQL = """
INSERT INTO matching_results (
    customer_id, program_id, score, industry_score, location_score,
    keyword_score, matched_industry, matched_location, matched_keywords,
    created_at
) VALUES ($1::uuid, $2::uuid, $3, $4, $5, $6, $7, $8, $9, $10)
"""

_UPSERT_RUN_SQL = """
INSERT INTO matching_runs (customer_id, min_score, max_results, result_count, computed_at)
VALUES ($1::uuid, $2, $3, $4, NOW())
ON CONFLICT (customer_id) DO UPDATE SET
    min_score = EXCLUDED.min_score,
    max_results = EXCLUDED.max_results,
    result_count = EXCLUDED.result_count,
    computed_at = EXCLUDED.computed_at
"""

_SELECT_WITH_PROGRAM_SQL = """
SELECT
    m.*,
    p.title, p.description, p.category, p.target_audience,
    p.target_location, p.keywords, p.budget_range, p.deadline,
    p.source_url, p.data_source, p.registered_at
FROM matching_results m
JOIN programs p ON p.id = m.program_id
"""


def _record_to_result(record: Any) -> MatchingResult:
    """Convert a joined asyncpg Record to a MatchingResult with program summary."""
    deadline = record["deadline"]
    return MatchingResult(
        customer_id=str(record["customer_id"]),
        program_id=str(record["program_id"]),
        score=record["score"],
        industry_score=record["industry_score"],
        location_score=record["location_score"],
        keyword_score=record["keyword_score"],
        matched_industry=record["matched_industry"],
        matched_location=record["matched_location"],
        matched_keywords=list(record["matched_keywords"] or []),
        created_at=record["created_at"],
        registered_at=record["registered_at"],
        program={
            "id": str(record["program_id"]),
            "title": record["title"],
            "description": record["description"],
            "category": record["category"],
            "target_audience": list(record["target_audience"] or []),
            "target_location": list(record["target_location"] or []),
            "keywords": list(record["keywords"] or []),
            "budget_range": record["budget_range"],
            "deadline": deadline.isoformat() if deadline else None,
            "source_url": record["source_url"],
            "data_source": record["data_source"],
        },
    )


class MatchingResultRepository:
    """Persistence for the current matching set of each customer."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the matching_results and matching_runs tables (idempotent). Needs programs."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Matching results table ensured")

    async def list_for_customer(
        self,
        customer_id: str,
        min_score: int = 0,
        limit: int | None = None,
    ) -> list[MatchingResult]:
        """Current results for a customer, best first.

        Args:
            customer_id: Customer UUID.
            min_score: Drop results below this score.
            limit: Maximum results (None for all).

        Returns:
            Results ordered by score desc, then newest program first.
        """
        sql = f"""
            {_SELECT_WITH_PROGRAM_SQL}
            WHERE m.customer_id = $1::uuid AND m.score >= $2
            ORDER BY m.score DESC, p.registered_at DESC
        """
        params: list[Any] = [customer_id, min_score]
        if limit is not None:
            sql += " LIMIT $3"
            params.append(limit)

        rows = await self._db.fetch(sql, *params)
        return [_record_to_result(r) for r in rows]

    async def count_for_customer(self, customer_id: str, min_score: int = 0) -> int:
        """Number of current results for a customer at or above min_score."""
        count = await self._db.fetchval(
            """
            SELECT COUNT(*) FROM matching_results
            WHERE customer_id = $1::uuid AND score >= $2
            """,
            customer_id, min_score,
        )
        return count or 0

    async def get_run(self, customer_id: str) -> MatchingRun | None:
        """The customer's last computation marker, or None if never computed."""
        row = await self._db.fetchrow(
            "SELECT * FROM matching_runs WHERE customer_id = $1::uuid", customer_id,
        )
        if row is None:
            return None
        return MatchingRun(
            customer_id=str(row["customer_id"]),
            min_score=row["min_score"],
            max_results=row["max_results"],
            result_count=row["result_count"],
            computed_at=row["computed_at"],
        )

    async def replace_for_customer(
        self,
        customer_id: str,
        results: list[MatchingResult],
        *,
        min_score: int,
        max_results: int,
    ) -> int:
        """Atomically replace a customer's whole result set.

        Either every row is swapped and the run marker updated, or nothing
        changes. ``min_score``/``max_results`` are the bounds the set was
        computed with.

        Returns:
            Number of rows written.
        """
        rows = [
            (
                customer_id,
                r.program_id,
                r.score,
                r.industry_score,
                r.location_score,
                r.keyword_score,
                r.matched_industry,
                r.matched_location,
                list(r.matched_keywords),
                r.created_at,
            )
            for r in results
        ]

        async with self._db.transaction() as conn:
            await conn.execute(
                "SELECT pg_advisory_xact_lock(hashtext($1))", customer_id,
            )
            await conn.execute(
                "DELETE FROM matching_results WHERE customer_id = $1::uuid",
                customer_id,
            )
            if rows:
                await conn.executemany(_INSERT_SQL, rows)
            await conn.execute(
                _UPSERT_RUN_SQL, customer_id, min_score, max_results, len(rows),
            )

        logger.info(f"Replaced {len(rows)} matching results for customer {customer_id}")
        return len(rows)


_SELECT_CUSTOMER_SQL = """
SELECT id, industry, location, challenges, goals, preferred_keywords
FROM customers
WHERE id = $1::uuid
"""


def _record_to_profile(record: Any) -> CustomerProfile:
    """Convert an asyncpg Record to a CustomerProfile."""
    return CustomerProfile(
        id=str(record["id"]),
        industry=record["industry"],
        location=record["location"],
        challenges=list(record["challenges"] or []),
        goals=list(record["goals"] or []),
        preferred_keywords=list(record["preferred_keywords"] or []),
    )


class CustomerRepository:
    """Read-only access to customer scoring inputs."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def get_profile(self, customer_id: str) -> CustomerProfile | None:
        """Fetch a customer's profile, or None if the customer does not exist."""
        row = await self._db.fetchrow(_SELECT_CUSTOMER_SQL, customer_id)
        return _record_to_profile(row) if row else None

    async def exists(self, customer_id: str) -> bool:
        result = await self._db.fetchval(
            "SELECT 1 FROM customers WHERE id = $1::uuid", customer_id,
        )
        return result is not None

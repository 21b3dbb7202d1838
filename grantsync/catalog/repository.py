"""Database repository for the programs catalog."""

import logging
from datetime import datetime
from typing import Any

from grantsync.ingestion.schemas import Program
from grantsync.storage.database import Database

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE EXTENSION IF NOT EXISTS pgcrypto;

CREATE TABLE IF NOT EXISTS programs (
    id              UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    data_source     TEXT NOT NULL,
    external_id     TEXT NOT NULL,
    title           TEXT NOT NULL,
    description     TEXT,
    category        TEXT,
    target_audience TEXT[] NOT NULL DEFAULT '{}',
    target_location TEXT[] NOT NULL DEFAULT '{}',
    keywords        TEXT[] NOT NULL DEFAULT '{}',
    budget_range    TEXT,
    deadline        TIMESTAMPTZ,
    source_url      TEXT,
    attachment_url  TEXT,
    registered_at   TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    start_date      TIMESTAMPTZ,
    end_date        TIMESTAMPTZ,
    raw_data        JSONB NOT NULL DEFAULT '{}',
    sync_status     TEXT NOT NULL DEFAULT 'active',
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (data_source, external_id)
);

CREATE INDEX IF NOT EXISTS idx_programs_data_source
    ON programs(data_source);
CREATE INDEX IF NOT EXISTS idx_programs_registered_at
    ON programs(registered_at DESC);
CREATE INDEX IF NOT EXISTS idx_programs_deadline
    ON programs(deadline);
CREATE INDEX IF NOT EXISTS idx_programs_active
    ON programs(registered_at DESC) WHERE sync_status = 'active';
"""

# id and created_at are left alone on conflict so catalog ids stay stable
_UPSERT_SQL = """
INSERT INTO programs (
    data_source, external_id, title, description, category,
    target_audience, target_location, keywords, budget_range,
    deadline, source_url, attachment_url, registered_at,
    start_date, end_date, raw_data, sync_status
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14, $15, $16, $17)
ON CONFLICT (data_source, external_id) DO UPDATE SET
    title = EXCLUDED.title,
    description = EXCLUDED.description,
    category = EXCLUDED.category,
    target_audience = EXCLUDED.target_audience,
    target_location = EXCLUDED.target_location,
    keywords = EXCLUDED.keywords,
    budget_range = EXCLUDED.budget_range,
    deadline = EXCLUDED.deadline,
    source_url = EXCLUDED.source_url,
    attachment_url = EXCLUDED.attachment_url,
    registered_at = EXCLUDED.registered_at,
    start_date = EXCLUDED.start_date,
    end_date = EXCLUDED.end_date,
    raw_data = EXCLUDED.raw_data,
    sync_status = EXCLUDED.sync_status,
    updated_at = NOW()
RETURNING id
"""


def _record_to_program(record) -> Program:
    """Convert an asyncpg Record to a Program."""
    raw_data = record["raw_data"]
    return Program(
        id=str(record["id"]),
        data_source=record["data_source"],
        external_id=record["external_id"],
        title=record["title"],
        description=record["description"],
        category=record["category"],
        target_audience=list(record["target_audience"] or []),
        target_location=list(record["target_location"] or []),
        keywords=list(record["keywords"] or []),
        budget_range=record["budget_range"],
        deadline=record["deadline"],
        source_url=record["source_url"],
        attachment_url=record["attachment_url"],
        registered_at=record["registered_at"],
        start_date=record["start_date"],
        end_date=record["end_date"],
        raw_data=dict(raw_data) if raw_data else {},
        sync_status=record["sync_status"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class ProgramRepository:
    """CRUD operations for the programs table."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the programs table and indexes (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Programs table ensured")

    async def upsert(self, program: Program) -> str:
        """
        Insert or update a program keyed by (data_source, external_id).

        Returns:
            The program's catalog id, unchanged across re-syncs.
        """
        program_id = await self._db.fetchval(
            _UPSERT_SQL,
            program.data_source,
            program.external_id,
            program.title,
            program.description,
            program.category,
            program.target_audience,
            program.target_location,
            program.keywords,
            program.budget_range,
            program.deadline,
            program.source_url,
            program.attachment_url,
            program.registered_at,
            program.start_date,
            program.end_date,
            program.raw_data,
            program.sync_status,
        )
        return str(program_id)

    async def get_by_id(self, program_id: str) -> Program | None:
        """Fetch a program by catalog id."""
        row = await self._db.fetchrow(
            "SELECT * FROM programs WHERE id = $1::uuid", program_id,
        )
        return _record_to_program(row) if row else None

    async def list_active(self) -> list[Program]:
        """All active programs, newest first. Input set for matching."""
        rows = await self._db.fetch(
            "SELECT * FROM programs WHERE sync_status = 'active' "
            "ORDER BY registered_at DESC",
        )
        return [_record_to_program(r) for r in rows]

    async def list_programs(
        self,
        data_sources: list[str] | None = None,
        category: str | None = None,
        target_audience: str | None = None,
        target_location: str | None = None,
        keyword: str | None = None,
        deadline_after: datetime | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Program], int]:
        """Paginated catalog listing with filters. Returns (programs, total)."""
        conditions: list[str] = ["sync_status = 'active'"]
        params: list[Any] = []
        idx = 1

        if data_sources:
            conditions.append(f"data_source = ANY(${idx}::text[])")
            params.append(list(data_sources))
            idx += 1

        if category:
            conditions.append(f"category = ${idx}")
            params.append(category)
            idx += 1

        if target_audience:
            conditions.append(f"${idx} = ANY(target_audience)")
            params.append(target_audience)
            idx += 1

        if target_location:
            conditions.append(f"${idx} = ANY(target_location)")
            params.append(target_location)
            idx += 1

        if keyword:
            conditions.append(
                f"(title ILIKE ${idx} OR description ILIKE ${idx} "
                f"OR array_to_string(keywords, ' ') ILIKE ${idx})"
            )
            params.append(f"%{keyword}%")
            idx += 1

        if deadline_after is not None:
            conditions.append(f"(deadline IS NULL OR deadline >= ${idx})")
            params.append(deadline_after)
            idx += 1

        where_clause = " WHERE " + " AND ".join(conditions)

        count_sql = f"SELECT COUNT(*) FROM programs{where_clause}"
        total = await self._db.fetchval(count_sql, *params)

        data_sql = f"""
            SELECT * FROM programs{where_clause}
            ORDER BY registered_at DESC
            LIMIT ${idx} OFFSET ${idx + 1}
        """
        params.extend([limit, offset])
        rows = await self._db.fetch(data_sql, *params)

        return [_record_to_program(r) for r in rows], total or 0

    async def count_by_source(self) -> dict[str, int]:
        """Active program counts keyed by data source."""
        rows = await self._db.fetch(
            """
            SELECT data_source, COUNT(*) AS count
            FROM programs
            WHERE sync_status = 'active'
            GROUP BY data_source
            ORDER BY data_source
            """
        )
        return {r["data_source"]: r["count"] for r in rows}

    async def list_missing_attachments(
        self, data_source: str, limit: int = 500,
    ) -> list[Program]:
        """Programs from ``data_source`` that have no attachment URL yet."""
        rows = await self._db.fetch(
            """
            SELECT * FROM programs
            WHERE data_source = $1 AND attachment_url IS NULL
            ORDER BY registered_at DESC
            LIMIT $2
            """,
            data_source, limit,
        )
        return [_record_to_program(r) for r in rows]

    async def set_attachment_url(self, program_id: str, url: str) -> bool:
        """Set a program's attachment URL. Returns True if a row was updated."""
        result = await self._db.execute(
            """
            UPDATE programs SET attachment_url = $2, updated_at = NOW()
            WHERE id = $1::uuid
            """,
            program_id, url,
        )
        return result.endswith("1")

"""Database repository for the sync_metadata table."""

import logging

from grantsync.storage.database import Database
from grantsync.sync.schemas import SyncMetadata

logger = logging.getLogger(__name__)

_CREATE_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS sync_metadata (
    data_source     TEXT PRIMARY KEY,
    last_synced_at  TIMESTAMPTZ,
    last_success_at TIMESTAMPTZ,
    sync_count      INTEGER NOT NULL DEFAULT 0,
    last_result     TEXT,
    created_at      TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at      TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
ALTER TABLE sync_metadata ADD COLUMN IF NOT EXISTS last_success_at TIMESTAMPTZ;
"""

# last_success_at only moves on success; incremental fetches start from it
_RECORD_ATTEMPT_SQL = """
INSERT INTO sync_metadata (data_source, last_synced_at, last_success_at, sync_count, last_result)
VALUES ($1, NOW(), CASE WHEN $3 THEN NOW() END, 1, $2)
ON CONFLICT (data_source) DO UPDATE SET
    last_synced_at = NOW(),
    last_success_at = CASE WHEN $3 THEN NOW() ELSE sync_metadata.last_success_at END,
    sync_count = sync_metadata.sync_count + 1,
    last_result = EXCLUDED.last_result,
    updated_at = NOW()
RETURNING *
"""


def _record_to_metadata(record) -> SyncMetadata:
    """Convert an asyncpg Record to SyncMetadata."""
    return SyncMetadata(
        data_source=record["data_source"],
        last_synced_at=record["last_synced_at"],
        last_success_at=record["last_success_at"],
        sync_count=record["sync_count"],
        last_result=record["last_result"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


class SyncMetadataRepository:
    """Per-registry sync bookkeeping."""

    def __init__(self, database: Database) -> None:
        self._db = database

    async def create_table(self) -> None:
        """Create the sync_metadata table (idempotent)."""
        await self._db.execute(_CREATE_TABLE_SQL)
        logger.info("Sync metadata table ensured")

    async def record_attempt(
        self, data_source: str, last_result: str, success: bool = False,
    ) -> SyncMetadata:
        """Record one sync attempt, bumping sync_count.

        last_success_at is only advanced when ``success`` is true.
        """
        row = await self._db.fetchrow(
            _RECORD_ATTEMPT_SQL, data_source, last_result, success,
        )
        return _record_to_metadata(row)

    async def get(self, data_source: str) -> SyncMetadata | None:
        row = await self._db.fetchrow(
            "SELECT * FROM sync_metadata WHERE data_source = $1", data_source,
        )
        return _record_to_metadata(row) if row else None

    async def list_all(self) -> list[SyncMetadata]:
        rows = await self._db.fetch(
            "SELECT * FROM sync_metadata ORDER BY data_source"
        )
        return [_record_to_metadata(r) for r in rows]

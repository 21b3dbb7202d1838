"""
Dependency injection for FastAPI endpoints.

Services are process-wide singletons created on first use. The matching
engine in particular must be shared so concurrent requests for the same
customer join one recomputation.
"""

from grantsync.catalog.repository import ProgramRepository
from grantsync.config.settings import get_settings
from grantsync.ingestion.base_connector import BaseConnector
from grantsync.ingestion.connectors import create_connectors
from grantsync.matching.engine import MatchingEngine
from grantsync.matching.repository import CustomerRepository, MatchingResultRepository
from grantsync.storage.database import Database
from grantsync.sync.config import SyncConfig
from grantsync.sync.repository import SyncMetadataRepository

# Global service instances (initialized on first request)
_database: Database | None = None
_matching_engine: MatchingEngine | None = None


async def get_database() -> Database:
    """Get the shared database pool, connecting on first use."""
    global _database

    if _database is None:
        database = Database()
        await database.connect()
        _database = database

    return _database


async def get_program_repository() -> ProgramRepository:
    return ProgramRepository(await get_database())


async def get_sync_metadata_repository() -> SyncMetadataRepository:
    return SyncMetadataRepository(await get_database())


def get_sync_config() -> SyncConfig:
    return SyncConfig()


def get_connectors() -> list[BaseConnector]:
    """
    Build fresh connectors for one sync run.

    Each run owns its connectors; the orchestrator closes them.
    """
    config = get_sync_config()
    return create_connectors(
        get_settings(),
        page_size=config.page_size,
        max_pages=config.max_pages,
    )


async def get_matching_engine() -> MatchingEngine:
    """Get the shared matching engine."""
    global _matching_engine

    if _matching_engine is None:
        database = await get_database()
        _matching_engine = MatchingEngine(
            program_repository=ProgramRepository(database),
            result_repository=MatchingResultRepository(database),
            customer_repository=CustomerRepository(database),
        )

    return _matching_engine


async def cleanup_dependencies() -> None:
    """Clean up global dependencies on shutdown."""
    global _database, _matching_engine

    _matching_engine = None

    if _database is not None:
        await _database.close()
        _database = None

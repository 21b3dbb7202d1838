"""Multi-source catalog synchronization."""

from grantsync.sync.config import SyncConfig
from grantsync.sync.orchestrator import ProgramSyncOrchestrator
from grantsync.sync.repository import SyncMetadataRepository
from grantsync.sync.schemas import SourceSyncResult, SyncMetadata, SyncStats

__all__ = [
    "ProgramSyncOrchestrator",
    "SourceSyncResult",
    "SyncConfig",
    "SyncMetadata",
    "SyncMetadataRepository",
    "SyncStats",
]

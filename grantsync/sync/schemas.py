"""Schema definitions for sync bookkeeping.

``SyncMetadata`` maps 1:1 to the ``sync_metadata`` table. ``SourceSyncResult``
and ``SyncStats`` are the in-memory outcome of one orchestrator run, returned
by the cron endpoint and the ``sync`` CLI command.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class SyncMetadata:
    """Per-registry sync bookkeeping row.

    Attributes:
        data_source: Registry name (unique).
        last_synced_at: When the last attempt finished.
        last_success_at: When the last successful attempt finished.
        sync_count: Number of attempts so far, success or failure.
        last_result: Human-readable summary of the last attempt.
    """

    data_source: str
    last_synced_at: datetime | None = None
    last_success_at: datetime | None = None
    sync_count: int = 0
    last_result: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def last_succeeded(self) -> bool:
        return bool(self.last_result) and self.last_result.startswith("success")

    def to_dict(self) -> dict[str, Any]:
        return {
            "data_source": self.data_source,
            "last_synced_at": self.last_synced_at.isoformat() if self.last_synced_at else None,
            "last_success_at": self.last_success_at.isoformat() if self.last_success_at else None,
            "sync_count": self.sync_count,
            "last_result": self.last_result,
        }


@dataclass
class SourceSyncResult:
    """Outcome of syncing one registry."""

    data_source: str
    success: bool
    count: int = 0
    skipped: int = 0
    error: str | None = None
    duration_seconds: float = 0.0

    def summary(self) -> str:
        """One-line summary stored as ``sync_metadata.last_result``."""
        if self.success:
            return f"success: {self.count} programs ({self.skipped} skipped)"
        return f"failed: {self.error}"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class SyncStats:
    """Aggregate outcome of one orchestrator run."""

    results: list[SourceSyncResult] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if not r.success)

    @property
    def program_count(self) -> int:
        return sum(r.count for r in self.results if r.success)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "program_count": self.program_count,
            "results": [r.to_dict() for r in self.results],
        }

"""
Sync orchestrator - pulls every registry into the program catalog.

One run fetches each configured registry, normalizes every raw record,
upserts it into the catalog, and records a SyncMetadata row per registry.

Features:
- Serial (default) or bounded-concurrency execution
- Per-source failure isolation
- Optional incremental fetch from the last successful sync
- Optional wall-clock deadline for the whole run
- Metrics collection
"""

import asyncio
import time
from collections.abc import Sequence
from datetime import datetime, timezone
from types import TracebackType
from typing import Any

import asyncpg
import structlog

from grantsync.catalog.repository import ProgramRepository
from grantsync.errors import MissingExternalIdError
from grantsync.ingestion.base_connector import BaseConnector
from grantsync.ingestion.normalizer import normalize
from grantsync.observability.metrics import get_metrics
from grantsync.observability.tracing import get_tracer, traced
from grantsync.sync.config import SyncConfig
from grantsync.sync.repository import SyncMetadataRepository
from grantsync.sync.schemas import SourceSyncResult, SyncStats

logger = structlog.get_logger(__name__)

# Store failures that mean the catalog itself is unreachable; these abort the run
STORE_FATAL_ERRORS = (OSError, asyncpg.PostgresConnectionError, asyncpg.InterfaceError)


class ProgramSyncOrchestrator:
    """
    Runs one sync pass over a list of registry connectors.

    A failing registry never stops the others: its error is recorded in
    its SourceSyncResult and SyncMetadata row. Only store connection
    failures propagate out of ``sync_all``.

    Usage:
        async with ProgramSyncOrchestrator(connectors, programs, metadata) as orch:
            stats = await orch.sync_all(deadline=240)
    """

    def __init__(
        self,
        connectors: Sequence[BaseConnector],
        program_repository: ProgramRepository,
        metadata_repository: SyncMetadataRepository,
        config: SyncConfig | None = None,
    ):
        """
        Initialize orchestrator.

        Args:
            connectors: Registry connectors, in sync order
            program_repository: Catalog store
            metadata_repository: Sync bookkeeping store
            config: Sync configuration (defaults to SyncConfig())
        """
        self._connectors = list(connectors)
        self._programs = program_repository
        self._metadata = metadata_repository
        self._config = config or SyncConfig()
        self._metrics = get_metrics()
        self._tracer = get_tracer(__name__)
        self._disposed = False

        logger.info(
            "Sync orchestrator initialized",
            sources=[c.data_source for c in self._connectors],
            concurrency=self._config.concurrency,
            incremental=self._config.incremental,
        )

    @property
    def connectors(self) -> list[BaseConnector]:
        return list(self._connectors)

    async def __aenter__(self) -> "ProgramSyncOrchestrator":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.dispose()

    async def dispose(self) -> None:
        """Close every connector's HTTP client. Safe to call more than once."""
        if self._disposed:
            return
        self._disposed = True

        for connector in self._connectors:
            try:
                await connector.close()
            except Exception as e:
                logger.warning(
                    "Connector close failed",
                    data_source=connector.data_source,
                    error=str(e),
                )

    async def sync_all(self, deadline: float | None = None) -> SyncStats:
        """
        Sync every registry once.

        Args:
            deadline: Wall-clock budget in seconds (defaults to
                config.deadline_seconds). Sources still running when it
                expires are cancelled and reported as failed.

        Returns:
            SyncStats with one result per connector, in connector order

        Raises:
            OSError / asyncpg connection errors if the catalog store is
            unreachable.
        """
        if self._disposed:
            raise RuntimeError("Orchestrator has been disposed")

        deadline = deadline if deadline is not None else self._config.deadline_seconds
        outcomes: dict[str, SourceSyncResult] = {}
        synced_at = datetime.now(timezone.utc)
        start = time.monotonic()

        self._metrics.sync_runs.inc()
        logger.info("Sync run started", sources=len(self._connectors), deadline=deadline)

        try:
            async with asyncio.timeout(deadline) as window:
                if self._config.concurrency <= 1 or len(self._connectors) <= 1:
                    for connector in self._connectors:
                        await self._sync_source(connector, synced_at, outcomes)
                else:
                    await self._sync_concurrently(synced_at, outcomes)
        except TimeoutError:
            # Only the run deadline is absorbed; a store-side timeout is fatal
            if not window.expired():
                raise
            logger.warning(
                "Sync deadline exceeded",
                deadline=deadline,
                finished=list(outcomes),
            )

        for connector in self._connectors:
            if connector.data_source not in outcomes:
                result = SourceSyncResult(
                    data_source=connector.data_source,
                    success=False,
                    error=f"TimeoutError: sync deadline of {deadline}s exceeded",
                    duration_seconds=time.monotonic() - start,
                )
                await self._finish_source(result, outcomes)

        stats = SyncStats(
            results=[outcomes[c.data_source] for c in self._connectors]
        )

        logger.info(
            "Sync run finished",
            total=stats.total,
            succeeded=stats.succeeded,
            failed=stats.failed,
            program_count=stats.program_count,
            elapsed=round(time.monotonic() - start, 2),
        )
        return stats

    async def _sync_concurrently(
        self,
        synced_at: datetime,
        outcomes: dict[str, SourceSyncResult],
    ) -> None:
        """Run sources on a worker pool no wider than the source list."""
        semaphore = asyncio.Semaphore(
            min(self._config.concurrency, len(self._connectors))
        )

        async def bounded(connector: BaseConnector) -> None:
            async with semaphore:
                await self._sync_source(connector, synced_at, outcomes)

        tasks = [
            asyncio.create_task(bounded(c), name=f"sync_{c.data_source}")
            for c in self._connectors
        ]
        try:
            await asyncio.gather(*tasks)
        finally:
            # A fatal error or the deadline leaves siblings running; stop them
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _sync_source(
        self,
        connector: BaseConnector,
        synced_at: datetime,
        outcomes: dict[str, SourceSyncResult],
    ) -> None:
        """Fetch, normalize and upsert one registry, then record the attempt."""
        data_source = connector.data_source
        start = time.monotonic()
        log = logger.bind(data_source=data_source)

        registered_after = await self._registered_after(data_source)

        with traced(self._tracer, "sync_source", {"data_source": data_source}) as span:
            try:
                raw_records = await connector.fetch(registered_after=registered_after)
            except Exception as e:
                # Includes OSError-based timeouts from the registry side
                result = self._failed(data_source, e)
            else:
                try:
                    count, skipped = await self._store(data_source, raw_records, synced_at)
                except STORE_FATAL_ERRORS:
                    raise
                except Exception as e:
                    result = self._failed(data_source, e)
                else:
                    result = SourceSyncResult(
                        data_source=data_source,
                        success=True,
                        count=count,
                        skipped=skipped,
                    )
                    log.info("Source synced", count=count, skipped=skipped)

            span.set_attribute("sync.success", result.success)
            span.set_attribute("sync.count", result.count)

        result.duration_seconds = time.monotonic() - start
        await self._finish_source(result, outcomes)

    def _failed(self, data_source: str, error: Exception) -> SourceSyncResult:
        logger.error(
            "Source sync failed",
            data_source=data_source,
            error=str(error),
            error_type=type(error).__name__,
        )
        return SourceSyncResult(
            data_source=data_source,
            success=False,
            error=f"{type(error).__name__}: {error}",
        )

    async def _registered_after(self, data_source: str) -> datetime | None:
        if not self._config.incremental:
            return None
        metadata = await self._metadata.get(data_source)
        return metadata.last_success_at if metadata else None

    async def _store(
        self,
        data_source: str,
        raw_records: list[dict[str, Any]],
        synced_at: datetime,
    ) -> tuple[int, int]:
        """
        Normalize and upsert records in connector order.

        Returns:
            (upserted, skipped)
        """
        count = 0
        skipped = 0

        for raw in raw_records:
            try:
                program = normalize(data_source, raw, now=synced_at)
            except MissingExternalIdError:
                skipped += 1
                self._metrics.record_skipped(data_source, "missing_id")
                logger.warning("Record without external id skipped", data_source=data_source)
                continue

            try:
                await self._programs.upsert(program)
            except asyncpg.DataError as e:
                skipped += 1
                self._metrics.record_skipped(data_source, "rejected")
                logger.warning(
                    "Record rejected by catalog store",
                    data_source=data_source,
                    external_id=program.external_id,
                    error=str(e),
                )
                continue

            count += 1

        return count, skipped

    async def _finish_source(
        self,
        result: SourceSyncResult,
        outcomes: dict[str, SourceSyncResult],
    ) -> None:
        """Persist the attempt summary and publish metrics."""
        outcomes[result.data_source] = result
        await self._metadata.record_attempt(
            result.data_source, result.summary(), success=result.success,
        )
        self._metrics.record_source_sync(
            result.data_source,
            success=result.success,
            count=result.count,
            duration=result.duration_seconds,
        )

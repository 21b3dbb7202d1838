"""Scheduler-facing sync trigger."""

import time

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from grantsync.api.auth import verify_cron_secret
from grantsync.api.dependencies import (
    get_connectors,
    get_program_repository,
    get_sync_config,
    get_sync_metadata_repository,
)
from grantsync.api.errors import APIError
from grantsync.api.models import ErrorResponse, SyncResponse, SyncStatsData
from grantsync.catalog.repository import ProgramRepository
from grantsync.ingestion.base_connector import BaseConnector
from grantsync.sync.config import SyncConfig
from grantsync.sync.orchestrator import ProgramSyncOrchestrator
from grantsync.sync.repository import SyncMetadataRepository

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get(
    "/cron/sync-programs",
    response_model=SyncResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Missing or wrong cron secret"},
        500: {"model": ErrorResponse, "description": "Secret not configured or store failure"},
    },
    summary="Sync all registries",
    description=(
        "Pull every configured registry into the program catalog. "
        "Requires `Authorization: Bearer <CRON_SECRET>`. Returns 200 even "
        "when individual registries fail; see per-source results."
    ),
)
async def sync_programs(
    deadline_seconds: float | None = Query(
        default=None,
        gt=0,
        le=3600,
        description="Wall-clock budget for the run; unfinished registries fail",
    ),
    _: None = Depends(verify_cron_secret),
    connectors: list[BaseConnector] = Depends(get_connectors),
    program_repo: ProgramRepository = Depends(get_program_repository),
    metadata_repo: SyncMetadataRepository = Depends(get_sync_metadata_repository),
    config: SyncConfig = Depends(get_sync_config),
) -> SyncResponse:
    start_time = time.perf_counter()

    try:
        async with ProgramSyncOrchestrator(
            connectors, program_repo, metadata_repo, config,
        ) as orchestrator:
            stats = await orchestrator.sync_all(deadline=deadline_seconds)

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Cron sync completed",
            total=stats.total,
            succeeded=stats.succeeded,
            failed=stats.failed,
            program_count=stats.program_count,
            latency_ms=round(latency_ms, 2),
        )

        return SyncResponse(data=SyncStatsData(**stats.to_dict()))

    except HTTPException:
        raise
    except Exception as e:
        logger.error("sync_programs_failed", error=str(e), exc_info=True)
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "SYNC_ERROR",
            "Program sync failed",
            {"error": f"{type(e).__name__}: {e}"},
        )

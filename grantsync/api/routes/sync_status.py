"""Per-registry sync status."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from grantsync.api.auth import verify_api_key
from grantsync.api.dependencies import get_sync_metadata_repository
from grantsync.api.errors import APIError
from grantsync.api.models import (
    ErrorResponse,
    SyncMetadataItem,
    SyncStatusMetadata,
    SyncStatusResponse,
)
from grantsync.sync.repository import SyncMetadataRepository

logger = structlog.get_logger(__name__)
router = APIRouter()


@router.get(
    "/sync/status",
    response_model=SyncStatusResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Sync status per registry",
    description="Last sync time, attempt count and last result for each registry.",
)
async def get_sync_status(
    api_key: str = Depends(verify_api_key),
    metadata_repo: SyncMetadataRepository = Depends(get_sync_metadata_repository),
) -> SyncStatusResponse:
    try:
        rows = await metadata_repo.list_all()
        return SyncStatusResponse(
            data=[SyncMetadataItem(**m.to_dict()) for m in rows],
            metadata=SyncStatusMetadata(total=len(rows)),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error("get_sync_status_failed", error=str(e), exc_info=True)
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Failed to get sync status",
        )

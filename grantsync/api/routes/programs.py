"""Program catalog listing and detail."""

import uuid
from datetime import datetime, timezone

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from grantsync.api.auth import verify_api_key
from grantsync.api.dependencies import get_program_repository
from grantsync.api.errors import APIError
from grantsync.api.models import (
    ErrorResponse,
    ProgramDetail,
    ProgramDetailResponse,
    ProgramItem,
    ProgramListMetadata,
    ProgramListResponse,
)
from grantsync.catalog.repository import ProgramRepository
from grantsync.ingestion.schemas import Program, display_source, expand_data_source

logger = structlog.get_logger(__name__)
router = APIRouter()


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _to_item(program: Program) -> ProgramItem:
    return ProgramItem(
        id=program.id or "",
        data_source=program.data_source,
        external_id=program.external_id,
        title=program.title,
        description=program.description,
        category=program.category,
        target_audience=program.target_audience,
        target_location=program.target_location,
        keywords=program.keywords,
        budget_range=program.budget_range,
        deadline=_iso(program.deadline),
        source_url=program.source_url,
        attachment_url=program.attachment_url,
        registered_at=_iso(program.registered_at),
        start_date=_iso(program.start_date),
        end_date=_iso(program.end_date),
    )


def merge_distribution(counts: dict[str, int]) -> dict[str, int]:
    """Fold per-registry counts into display groups (KOCCA boards merged)."""
    merged: dict[str, int] = {}
    for data_source, count in counts.items():
        key = display_source(data_source)
        merged[key] = merged.get(key, 0) + count
    return merged


@router.get(
    "/programs",
    response_model=ProgramListResponse,
    response_model_by_alias=True,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid parameters"},
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="List catalog programs",
    description=(
        "Paginated listing of active programs, newest first. `dataSource` "
        "accepts a registry name or 한국콘텐츠진흥원 for both KOCCA boards."
    ),
)
async def list_programs(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    data_source: str | None = Query(default=None, alias="dataSource"),
    category: str | None = Query(default=None),
    target_audience: str | None = Query(default=None, alias="targetAudience"),
    target_location: str | None = Query(default=None, alias="targetLocation"),
    keyword: str | None = Query(default=None, max_length=200),
    open_only: bool = Query(
        default=False,
        alias="openOnly",
        description="Hide programs whose deadline has passed",
    ),
    api_key: str = Depends(verify_api_key),
    program_repo: ProgramRepository = Depends(get_program_repository),
) -> ProgramListResponse:
    try:
        programs, total = await program_repo.list_programs(
            data_sources=expand_data_source(data_source) if data_source else None,
            category=category,
            target_audience=target_audience,
            target_location=target_location,
            keyword=keyword,
            deadline_after=datetime.now(timezone.utc) if open_only else None,
            limit=limit,
            offset=(page - 1) * limit,
        )
        distribution = merge_distribution(await program_repo.count_by_source())

        return ProgramListResponse(
            data=[_to_item(p) for p in programs],
            metadata=ProgramListMetadata(
                total=total,
                page=page,
                limit=limit,
                source_distribution=distribution,
            ),
        )

    except HTTPException:
        raise
    except Exception as e:
        logger.error("list_programs_failed", error=str(e), exc_info=True)
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Failed to list programs",
        )


@router.get(
    "/programs/{program_id}",
    response_model=ProgramDetailResponse,
    responses={
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Unknown program"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Get one program",
    description="A single catalog program, including the raw registry record.",
)
async def get_program(
    program_id: uuid.UUID = Path(..., description="Program UUID"),
    api_key: str = Depends(verify_api_key),
    program_repo: ProgramRepository = Depends(get_program_repository),
) -> ProgramDetailResponse:
    try:
        program = await program_repo.get_by_id(str(program_id))
    except Exception as e:
        logger.error("get_program_failed", program_id=str(program_id), error=str(e), exc_info=True)
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "INTERNAL_ERROR",
            "Failed to fetch program",
        )

    if program is None:
        raise APIError(
            status.HTTP_404_NOT_FOUND,
            "NOT_FOUND",
            f"Program with id {program_id} not found",
            {"programId": str(program_id)},
        )

    detail = ProgramDetail(**_to_item(program).model_dump(), raw_data=program.raw_data or {})
    return ProgramDetailResponse(data=detail)

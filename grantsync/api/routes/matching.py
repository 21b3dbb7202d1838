"""Matching endpoints: trigger (cache-first) and read."""

import time
import uuid

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Query, status

from grantsync.api.auth import verify_api_key
from grantsync.api.dependencies import get_matching_engine
from grantsync.api.errors import APIError
from grantsync.api.models import (
    ErrorResponse,
    MatchingMetadata,
    MatchingRequest,
    MatchingResponse,
    MatchingResultItem,
)
from grantsync.errors import CustomerNotFoundError
from grantsync.matching.engine import MatchingEngine
from grantsync.matching.schemas import MatchingResult

logger = structlog.get_logger(__name__)
router = APIRouter()

MAX_READ_LIMIT = 100


def _to_item(result: MatchingResult) -> MatchingResultItem:
    return MatchingResultItem(**result.to_dict())


def _not_found(e: CustomerNotFoundError) -> APIError:
    return APIError(
        status.HTTP_404_NOT_FOUND,
        "CUSTOMER_NOT_FOUND",
        str(e),
        {"customerId": e.customer_id},
    )


@router.post(
    "/matching",
    response_model=MatchingResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request body"},
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Unknown customer"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Run matching for a customer",
    description=(
        "Return the customer's stored matching results, or compute and store "
        "them when none exist or `forceRefresh` is true."
    ),
)
async def run_matching(
    request: MatchingRequest,
    api_key: str = Depends(verify_api_key),
    engine: MatchingEngine = Depends(get_matching_engine),
) -> MatchingResponse:
    start_time = time.perf_counter()
    customer_id = str(request.customer_id)

    try:
        results = await engine.match(
            customer_id,
            min_score=request.min_score,
            max_results=request.max_results,
            force_refresh=request.force_refresh,
        )

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            "Matching completed",
            customer_id=customer_id,
            results=len(results),
            force_refresh=request.force_refresh,
            latency_ms=round(latency_ms, 2),
        )

        return MatchingResponse(
            data=[_to_item(r) for r in results],
            metadata=MatchingMetadata(total=len(results)),
        )

    except CustomerNotFoundError as e:
        raise _not_found(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("run_matching_failed", error=str(e), exc_info=True)
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "MATCHING_ERROR",
            "Failed to run matching",
        )


@router.get(
    "/matching/{customer_id}",
    response_model=MatchingResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid parameters"},
        401: {"model": ErrorResponse, "description": "Invalid API key"},
        404: {"model": ErrorResponse, "description": "Unknown customer"},
        500: {"model": ErrorResponse, "description": "Server error"},
    },
    summary="Get stored matching results",
    description="Read a customer's stored results. Never triggers computation.",
)
async def get_matching_results(
    customer_id: uuid.UUID = Path(..., description="Customer UUID"),
    limit: int = Query(default=10, ge=1, description="Maximum results (capped at 100)"),
    min_score: int = Query(default=0, ge=0, le=100, alias="minScore"),
    api_key: str = Depends(verify_api_key),
    engine: MatchingEngine = Depends(get_matching_engine),
) -> MatchingResponse:
    limit = min(limit, MAX_READ_LIMIT)

    try:
        results, total = await engine.get_results(
            str(customer_id), min_score=min_score, limit=limit,
        )

        return MatchingResponse(
            data=[_to_item(r) for r in results],
            metadata=MatchingMetadata(total=total, limit=limit),
        )

    except CustomerNotFoundError as e:
        raise _not_found(e)
    except HTTPException:
        raise
    except Exception as e:
        logger.error("get_matching_results_failed", error=str(e), exc_info=True)
        raise APIError(
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "MATCHING_ERROR",
            "Failed to get matching results",
        )

"""
Health check endpoint: database connectivity plus registry configuration.
"""

import time

import structlog
from fastapi import APIRouter, Depends

from grantsync.api.dependencies import get_database
from grantsync.api.models import ComponentHealth, HealthResponse
from grantsync.config.settings import get_settings
from grantsync.ingestion.schemas import DataSource
from grantsync.storage.database import Database

router = APIRouter()
logger = structlog.get_logger(__name__)


async def _check_database(db: Database) -> ComponentHealth:
    """Check database connectivity and measure latency."""
    start = time.perf_counter()
    try:
        healthy = await db.health_check()
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="healthy" if healthy else "unhealthy",
            latency_ms=round(latency_ms, 2),
        )
    except Exception as e:
        latency_ms = (time.perf_counter() - start) * 1000
        return ComponentHealth(
            status="unhealthy",
            latency_ms=round(latency_ms, 2),
            details={"error": str(e)},
        )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description="Check the database and report which registries are configured.",
)
async def health_check(db: Database = Depends(get_database)) -> HealthResponse:
    """
    Status logic:
    - unhealthy: database is down
    - degraded: no registry is configured (sync would do nothing)
    - healthy: otherwise
    """
    settings = get_settings()

    components = {"database": await _check_database(db)}
    sources = {
        DataSource.BIZINFO.value: settings.bizinfo_configured,
        DataSource.KSTARTUP.value: settings.kstartup_configured,
        DataSource.KOCCA_PIMS.value: settings.kocca_pims_configured,
        DataSource.KOCCA_FINANCE.value: settings.kocca_finance_configured,
        DataSource.SEOUL_TP.value: settings.seoul_tp_configured,
        DataSource.GYEONGGI_TP.value: settings.gyeonggi_tp_configured,
    }

    if components["database"].status == "unhealthy":
        status = "unhealthy"
    elif not any(sources.values()):
        status = "degraded"
    else:
        status = "healthy"

    return HealthResponse(
        status=status,
        components=components,
        sources_configured=sources,
    )

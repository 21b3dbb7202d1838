"""Registry connectors and the factory that wires them from settings."""

import logging

from grantsync.config.settings import Settings, get_settings
from grantsync.ingestion.base_connector import BaseConnector
from grantsync.ingestion.connectors.bizinfo import BizinfoConnector
from grantsync.ingestion.connectors.kocca import KoccaFinanceConnector, KoccaPimsConnector
from grantsync.ingestion.connectors.kstartup import KStartupConnector
from grantsync.ingestion.connectors.mock import MockConnector, create_mock_connectors
from grantsync.ingestion.connectors.technopark import GyeonggiTPConnector, SeoulTPConnector

logger = logging.getLogger(__name__)


def create_connectors(
    settings: Settings | None = None,
    page_size: int = 50,
    max_pages: int = 5,
    only: list[str] | None = None,
) -> list[BaseConnector]:
    """
    Create connectors for every registry with credentials configured.

    Registries without an API key or base URL, and technopark crawlers
    that are not enabled, are skipped with a warning.

    Args:
        settings: Application settings (defaults to get_settings())
        page_size: Records per page
        max_pages: Page cap per registry
        only: Restrict to these data source names

    Returns:
        Connectors in fixed registry order
    """
    settings = settings or get_settings()
    paging = {"page_size": page_size, "max_pages": max_pages}
    connectors: list[BaseConnector] = []

    if settings.bizinfo_configured:
        connectors.append(BizinfoConnector(
            api_key=settings.bizinfo_api_key,
            base_url=settings.bizinfo_api_base_url,
            **paging,
        ))
    else:
        logger.warning("기업마당 API not configured, skipping")

    if settings.kstartup_configured:
        connectors.append(KStartupConnector(
            api_key=settings.public_data_api_key,
            base_url=settings.kstartup_api_base_url,
            **paging,
        ))
    else:
        logger.warning("K-Startup API not configured, skipping")

    if settings.kocca_pims_configured:
        connectors.append(KoccaPimsConnector(
            api_key=settings.kocca_pims_api_key,
            base_url=settings.kocca_pims_api_base_url,
            **paging,
        ))
    else:
        logger.warning("KOCCA-PIMS API not configured, skipping")

    if settings.kocca_finance_configured:
        connectors.append(KoccaFinanceConnector(
            api_key=settings.kocca_fin_api_key,
            base_url=settings.kocca_finance_api_base_url,
            **paging,
        ))
    else:
        logger.warning("KOCCA-Finance API not configured, skipping")

    if settings.seoul_tp_configured:
        connectors.append(SeoulTPConnector(
            base_url=settings.seoul_tp_base_url,
            fetch_details=settings.seoul_tp_fetch_details,
            **paging,
        ))
    else:
        logger.warning("서울테크노파크 crawler not enabled, skipping")

    if settings.gyeonggi_tp_configured:
        connectors.append(GyeonggiTPConnector(
            base_url=settings.gyeonggi_tp_base_url,
            **paging,
        ))
    else:
        logger.warning("경기테크노파크 crawler not enabled, skipping")

    if only:
        connectors = [c for c in connectors if c.data_source in only]

    return connectors


__all__ = [
    "BizinfoConnector",
    "KStartupConnector",
    "KoccaPimsConnector",
    "KoccaFinanceConnector",
    "SeoulTPConnector",
    "GyeonggiTPConnector",
    "MockConnector",
    "create_connectors",
    "create_mock_connectors",
]

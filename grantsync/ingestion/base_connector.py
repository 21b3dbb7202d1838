"""
Base connector interface and shared functionality for registry connectors.

Each connector implements ``fetch_page()`` for one external program
registry. The base class provides:
- Pagination (page size, page cap, short-page stop)
- HTTP client ownership with retry and backoff
- Retry logging and metrics
- Run statistics
"""

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from grantsync.config.settings import Settings, get_settings
from grantsync.ingestion.http_client import HTTPClient
from grantsync.ingestion.retry import RetryConfig
from grantsync.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
DEFAULT_MAX_PAGES = 5


@dataclass
class ConnectorStats:
    """Statistics for one connector fetch."""

    pages_fetched: int = 0
    records_fetched: int = 0
    retries: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self.start_time


def retry_config_from_settings(settings: Settings) -> RetryConfig:
    """Build the retry policy shared by all registry calls."""
    return RetryConfig(
        max_retries=settings.max_http_retries,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.max_backoff_seconds,
    )


class BaseConnector(ABC):
    """
    Abstract base class for registry connectors.

    Subclasses must implement:
        - data_source: Registry name (DataSource value)
        - fetch_page(): Fetch one page of raw records

    The base class handles:
        - Paging up to max_pages, stopping on a short or empty page
        - Retrying each page request (via HTTPClient)
        - Logging and metrics
    """

    def __init__(
        self,
        http_client: HTTPClient | None = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        """
        Initialize connector.

        Args:
            http_client: Client to use; one is built from settings if None.
            page_size: Records requested per page.
            max_pages: Upper bound on pages per fetch.
        """
        if page_size < 1 or max_pages < 1:
            raise ValueError("page_size and max_pages must be positive")

        if http_client is None:
            settings = get_settings()
            http_client = HTTPClient(
                retry_config=retry_config_from_settings(settings),
                timeout=settings.http_timeout_seconds,
                on_retry=self._on_retry,
            )

        self._http = http_client
        self.page_size = page_size
        self.max_pages = max_pages
        self._stats = ConnectorStats()

    @property
    @abstractmethod
    def data_source(self) -> str:
        """Return the registry this connector handles."""
        ...

    @property
    def name(self) -> str:
        """Human-readable connector name."""
        return f"{self.data_source}_connector"

    @abstractmethod
    async def fetch_page(
        self,
        page: int,
        page_size: int,
        registered_after: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """
        Fetch one page of raw records from the registry.

        Args:
            page: 1-based page number
            page_size: Records per page
            registered_after: Only listings registered after this instant,
                where the registry supports it

        Returns:
            Raw records in registry order (possibly empty)

        Raises:
            SourceHTTPError / RetryableError / SourceResponseError when the
            page cannot be retrieved or parsed.
        """
        ...

    async def fetch(self, registered_after: datetime | None = None) -> list[dict[str, Any]]:
        """
        Fetch all raw records for this registry, page by page.

        Stops at max_pages, on an empty page, or on a page shorter than
        page_size. Errors propagate to the caller (the orchestrator).

        Returns:
            Raw records in the order the registry returned them
        """
        self._stats = ConnectorStats()
        records: list[dict[str, Any]] = []

        logger.info(f"Starting fetch for {self.name}")

        try:
            for page in range(1, self.max_pages + 1):
                batch = await self.fetch_page(page, self.page_size, registered_after)
                self._stats.pages_fetched += 1
                logger.debug(f"{self.name} page {page}: {len(batch)} records")

                if not batch:
                    break

                records.extend(batch)
                self._stats.records_fetched += len(batch)

                if len(batch) < self.page_size:
                    break
        finally:
            logger.info(
                f"{self.name} fetch finished: "
                f"pages={self._stats.pages_fetched}, "
                f"records={self._stats.records_fetched}, "
                f"retries={self._stats.retries}, "
                f"elapsed={self._stats.elapsed_seconds:.2f}s"
            )

        return records

    def _on_retry(self, attempt: int, delay: float, error: BaseException) -> None:
        self._stats.retries += 1
        get_metrics().record_retry(self.data_source)
        logger.warning(
            f"{self.name} retry attempt {attempt}, waiting {delay:.2f}s: "
            f"{type(error).__name__}: {error}"
        )

    @property
    def stats(self) -> ConnectorStats:
        """Get statistics for the latest fetch."""
        return self._stats

    async def health_check(self) -> bool:
        """
        Check if the connector can reach its registry.

        Fetches a single one-record page.
        """
        try:
            await self.fetch_page(1, 1)
            return True
        except Exception as e:
            logger.warning(f"{self.name} health check failed: {e}")
            return False

    async def close(self) -> None:
        """Release the HTTP connection pool."""
        await self._http.close()


def format_yyyymmdd(value: datetime) -> str:
    """Format a datetime the way the KOCCA registries expect (YYYYMMDD)."""
    return value.strftime("%Y%m%d")

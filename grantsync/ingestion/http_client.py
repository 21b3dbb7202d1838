"""
HTTP infrastructure layer for registry connectors.

Provides:
- HTTPClient: Async httpx client whose GET and form POST requests run
  through RetryStrategy

Every attempt maps failures to typed errors before the retry strategy sees
them: transport problems become RetryableError (network/timeout), non-2xx
responses become SourceHTTPError carrying the status code. This keeps
HTTP concerns (retries, backoff, error typing) out of the connectors.
"""

import logging
from typing import Any

import httpx

from grantsync.errors import ErrorKind, RetryableError, SourceHTTPError
from grantsync.ingestion.retry import RetryConfig, RetryObserver, RetryStrategy

logger = logging.getLogger(__name__)


class HTTPClient:
    """
    Async HTTP client with retry logic.

    Features:
    - Exponential backoff with jitter on retryable errors
    - Automatic retry on 408, 429 and 5xx status codes
    - Automatic retry on timeout/connection errors
    - Context manager for proper resource cleanup

    Example:
        async with HTTPClient(RetryConfig(max_retries=3)) as client:
            response = await client.get(
                "https://apis.data.go.kr/...",
                params={"page": 1},
            )
    """

    def __init__(
        self,
        retry_config: RetryConfig | None = None,
        timeout: float = 30.0,
        on_retry: RetryObserver | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            retry_config: Configuration for retry behavior. Uses defaults if None.
            timeout: Request timeout in seconds.
            on_retry: Observer called before each retry sleep.
        """
        self.retry_config = retry_config or RetryConfig()
        self.timeout = timeout
        self._strategy = RetryStrategy(self.retry_config)
        self._on_retry = on_retry
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "HTTPClient":
        """Enter async context manager, create client."""
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context manager, close client."""
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying connection pool. Safe to call repeatedly."""
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def is_closed(self) -> bool:
        return self._client is None

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform GET request with retry logic.

        Returns:
            httpx.Response on success (2xx/3xx)

        Raises:
            SourceHTTPError: On non-retryable status or after retries exhausted
            RetryableError: On transport failure after retries exhausted
        """
        return await self._request("GET", url, params=params, headers=headers)

    async def post(
        self,
        url: str,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        """
        Perform a form-encoded POST with retry logic.

        Used by the board crawlers, whose list pages are paged via form posts.
        Errors are typed and retried exactly like ``get``.
        """
        return await self._request("POST", url, data=data, headers=headers)

    async def _request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        data: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        client = self._ensure_client()

        async def attempt() -> httpx.Response:
            return await self._send(client, method, url, params, data, headers)

        return await self._strategy.execute(attempt, on_retry=self._on_retry)

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        params: dict[str, Any] | None,
        data: dict[str, Any] | None,
        headers: dict[str, str] | None,
    ) -> httpx.Response:
        """Single attempt, with failures mapped to typed errors."""
        try:
            response = await client.request(
                method, url, params=params, data=data, headers=headers,
            )
        except httpx.TimeoutException as e:
            raise RetryableError(
                f"Timeout calling {url}: {e}", kind=ErrorKind.TIMEOUT
            ) from e
        except httpx.TransportError as e:
            raise RetryableError(
                f"Network error calling {url}: {type(e).__name__}: {e}",
                kind=ErrorKind.NETWORK,
            ) from e

        if response.status_code >= 400:
            raise SourceHTTPError(
                f"Request to {url} failed with status {response.status_code}",
                status_code=response.status_code,
                response_body=response.text[:500],
            )

        return response

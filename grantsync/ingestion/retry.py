"""
Retry strategy for outbound registry calls.

Wraps a single awaitable operation with exponential backoff plus jitter.
Errors are classified by type: a ``kind`` of network/timeout, an explicit
``status_code`` in the retryable set, or a transport-level httpx exception.
Anything else aborts on the first failure without consuming a retry.

Formula: min(base_delay * 2^attempt + uniform(0, jitter), max_delay)
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

import httpx

from grantsync.errors import ErrorKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RETRYABLE_STATUS_CODES: frozenset[int] = frozenset({408, 429, 500, 502, 503, 504})

_RETRYABLE_KINDS = frozenset({ErrorKind.NETWORK, ErrorKind.TIMEOUT})

# (attempt, delay_seconds, error); attempt is 1-based
RetryObserver = Callable[[int, float, BaseException], None]


@dataclass
class RetryConfig:
    """
    Exponential backoff configuration.

    Attributes:
        max_retries: Retries after the first attempt (total calls = max_retries + 1).
        base_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound for any single delay, in seconds.
        jitter: Upper bound of the uniform random component, in seconds.
        retryable_status_codes: HTTP statuses that justify another attempt.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 1.0
    retryable_status_codes: frozenset[int] = field(
        default_factory=lambda: DEFAULT_RETRYABLE_STATUS_CODES
    )

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if self.base_delay < 0 or self.max_delay < 0 or self.jitter < 0:
            raise ValueError("delays must be non-negative")

    def compute_delay(self, attempt: int, jitter: bool = True) -> float:
        """
        Delay before retry number ``attempt`` (0-indexed).

        Args:
            attempt: Zero-based retry index.
            jitter: Include the random component. Disable for deterministic checks.

        Returns:
            Delay in seconds, never above max_delay.
        """
        delay = self.base_delay * (2**attempt)
        if jitter and self.jitter > 0:
            delay += random.uniform(0, self.jitter)
        return min(delay, self.max_delay)

    def is_retryable(self, error: BaseException) -> bool:
        """
        Decide whether ``error`` is worth another attempt.

        Retryable:
        - errors whose ``kind`` is network or timeout
        - errors carrying a ``status_code`` in retryable_status_codes
        - httpx.TimeoutException / httpx.TransportError
        - asyncio.TimeoutError
        """
        if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
            return True
        if isinstance(error, asyncio.TimeoutError):
            return True

        status_code = getattr(error, "status_code", None)
        if status_code is not None:
            return status_code in self.retryable_status_codes

        kind = getattr(error, "kind", None)
        return kind in _RETRYABLE_KINDS


class RetryStrategy:
    """
    Executes an async operation with retries.

    Usage:
        strategy = RetryStrategy(RetryConfig(max_retries=3))
        data = await strategy.execute(
            lambda: client.get(url),
            on_retry=lambda attempt, delay, err: logger.warning(...),
        )
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or RetryConfig()
        self._sleep = sleep

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        on_retry: RetryObserver | None = None,
    ) -> T:
        """
        Run ``operation`` until it succeeds, fails fatally, or retries run out.

        Raises:
            The last error raised by ``operation``.
        """
        attempt = 0
        while True:
            try:
                return await operation()
            except Exception as e:
                if not self.config.is_retryable(e):
                    raise
                if attempt >= self.config.max_retries:
                    logger.warning(
                        f"Retries exhausted after {attempt + 1} attempts: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise

                delay = self.config.compute_delay(attempt)
                attempt += 1
                if on_retry is not None:
                    on_retry(attempt, delay, e)
                logger.debug(
                    f"Retryable {type(e).__name__}, attempt "
                    f"{attempt}/{self.config.max_retries}, backing off {delay:.2f}s"
                )
                await self._sleep(delay)


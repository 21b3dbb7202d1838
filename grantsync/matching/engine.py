"""
Matching engine - ranks the program catalog for one customer.

Cache-first: a customer's stored result set is served as-is unless the
caller asks for a refresh. A set exists once a run marker has been written
for the customer, even when that run matched nothing; a request for a lower
threshold or a larger cap than the stored run recomputes.

Recomputation scores every active program, keeps the top results and
replaces the stored set atomically.

Concurrency:
- Concurrent requests with the same arguments share one in-flight task.
- Recomputations for one customer are serialized by a per-customer lock;
  whoever gets the lock second re-checks the cache first.
- Across processes, the store's advisory lock serializes the writes.
"""

import asyncio
import time
import weakref

import structlog

from grantsync.catalog.repository import ProgramRepository
from grantsync.errors import CustomerNotFoundError
from grantsync.matching.config import MatchingConfig
from grantsync.matching.repository import CustomerRepository, MatchingResultRepository
from grantsync.matching.schemas import CustomerProfile, MatchingResult
from grantsync.matching.scoring import rank_programs
from grantsync.observability.metrics import get_metrics
from grantsync.observability.tracing import get_tracer, traced

logger = structlog.get_logger(__name__)

_Key = tuple[str, int, int, bool]


class MatchingEngine:
    """
    Computes, caches and serves matching results.

    Usage:
        engine = MatchingEngine(programs, results, customers)
        results = await engine.match(customer_id, force_refresh=True)
    """

    def __init__(
        self,
        program_repository: ProgramRepository,
        result_repository: MatchingResultRepository,
        customer_repository: CustomerRepository,
        config: MatchingConfig | None = None,
    ):
        self._programs = program_repository
        self._results = result_repository
        self._customers = customer_repository
        self._config = config or MatchingConfig()
        self._metrics = get_metrics()
        self._tracer = get_tracer(__name__)

        self._inflight: dict[_Key, asyncio.Task] = {}
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    @property
    def config(self) -> MatchingConfig:
        return self._config

    async def match(
        self,
        customer_id: str,
        min_score: int | None = None,
        max_results: int | None = None,
        force_refresh: bool = False,
    ) -> list[MatchingResult]:
        """
        Return ranked matching results for a customer.

        Args:
            customer_id: Customer UUID
            min_score: Minimum total score (default from config, 30)
            max_results: Result cap (default from config, 50)
            force_refresh: Recompute even when a stored set exists

        Returns:
            Results ordered by score desc, then newest program first

        Raises:
            CustomerNotFoundError: If the customer does not exist
        """
        min_score = self._config.default_min_score if min_score is None else min_score
        max_results = self._config.default_max_results if max_results is None else max_results
        start = time.monotonic()

        profile = await self._customers.get_profile(customer_id)
        if profile is None:
            raise CustomerNotFoundError(customer_id)

        if not force_refresh:
            cached = await self._cached(customer_id, min_score, max_results)
            if cached is not None:
                self._record("cached", start, customer_id, len(cached))
                return cached

        key = (customer_id, min_score, max_results, force_refresh)
        task = self._inflight.get(key)
        if task is None:
            task = asyncio.create_task(
                self._compute_locked(profile, min_score, max_results, force_refresh),
                name=f"match_{customer_id}",
            )
            self._inflight[key] = task
            task.add_done_callback(lambda t: self._forget(key, t))
        else:
            logger.debug("Joining in-flight matching", customer_id=customer_id)

        # Shielded so one caller's cancellation does not abort shared work
        results, mode = await asyncio.shield(task)
        self._record(mode, start, customer_id, len(results))
        return results

    async def get_results(
        self,
        customer_id: str,
        min_score: int = 0,
        limit: int = 10,
    ) -> tuple[list[MatchingResult], int]:
        """
        Read stored results without computing anything.

        Returns:
            (results, total) where total counts every stored result at or
            above min_score.

        Raises:
            CustomerNotFoundError: If the customer does not exist
        """
        if not await self._customers.exists(customer_id):
            raise CustomerNotFoundError(customer_id)

        results = await self._results.list_for_customer(
            customer_id, min_score=min_score, limit=limit,
        )
        total = await self._results.count_for_customer(customer_id, min_score=min_score)
        return results, total

    async def _compute_locked(
        self,
        profile: CustomerProfile,
        min_score: int,
        max_results: int,
        force_refresh: bool,
    ) -> tuple[list[MatchingResult], str]:
        lock = self._locks.get(profile.id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[profile.id] = lock

        async with lock:
            if not force_refresh:
                cached = await self._cached(profile.id, min_score, max_results)
                if cached is not None:
                    return cached, "cached"

            with traced(self._tracer, "matching_recompute", {"customer_id": profile.id}):
                programs = await self._programs.list_active()
                results = rank_programs(
                    profile,
                    programs,
                    min_score=min_score,
                    max_results=max_results,
                    config=self._config,
                )
                await self._results.replace_for_customer(
                    profile.id, results, min_score=min_score, max_results=max_results,
                )

            logger.info(
                "Matching recomputed",
                customer_id=profile.id,
                programs=len(programs),
                results=len(results),
            )
            return results, "computed"

    async def _cached(
        self, customer_id: str, min_score: int, max_results: int,
    ) -> list[MatchingResult] | None:
        """The stored set, possibly empty, or None when it must be recomputed."""
        run = await self._results.get_run(customer_id)
        if run is None or not run.covers(min_score, max_results):
            return None
        return await self._results.list_for_customer(
            customer_id, min_score=min_score, limit=max_results,
        )

    def _forget(self, key: _Key, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]

    def _record(self, mode: str, start: float, customer_id: str, count: int) -> None:
        latency = time.monotonic() - start
        self._metrics.record_matching(mode, latency=latency)
        logger.info(
            "Matching served",
            customer_id=customer_id,
            mode=mode,
            results=count,
            latency_ms=round(latency * 1000, 1),
        )

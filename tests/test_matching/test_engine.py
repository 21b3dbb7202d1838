"""Tests for MatchingEngine caching and concurrency."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from grantsync.errors import CustomerNotFoundError
from grantsync.matching.engine import MatchingEngine
from grantsync.matching.schemas import MatchingResult, MatchingRun


class InMemoryResultRepository:
    """Result store keeping one customer's set in memory."""

    def __init__(self, rows: list[MatchingResult] | None = None):
        self.rows = list(rows or [])
        self.run: MatchingRun | None = None
        self.replace_calls = 0

    def seed(self, rows, min_score=30, max_results=50):
        self.rows = list(rows)
        self.run = MatchingRun("seeded", min_score, max_results, len(self.rows))

    async def get_run(self, customer_id):
        return self.run

    async def list_for_customer(self, customer_id, min_score=0, limit=None):
        rows = [r for r in self.rows if r.score >= min_score]
        return rows[:limit] if limit is not None else rows

    async def count_for_customer(self, customer_id, min_score=0):
        return len([r for r in self.rows if r.score >= min_score])

    async def replace_for_customer(self, customer_id, results, *, min_score, max_results):
        self.replace_calls += 1
        self.rows = list(results)
        self.run = MatchingRun(customer_id, min_score, max_results, len(self.rows))
        return len(results)


@pytest.fixture
def customer_repo(sample_customer):
    repo = AsyncMock()
    repo.get_profile = AsyncMock(return_value=sample_customer)
    repo.exists = AsyncMock(return_value=True)
    return repo


@pytest.fixture
def program_repo(sample_program):
    repo = AsyncMock()
    repo.list_active = AsyncMock(return_value=[sample_program])
    return repo


@pytest.fixture
def result_repo():
    return InMemoryResultRepository()


@pytest.fixture
def engine(program_repo, result_repo, customer_repo):
    return MatchingEngine(program_repo, result_repo, customer_repo)


def _stored(customer_id: str, score: int = 70) -> MatchingResult:
    return MatchingResult(customer_id=customer_id, program_id="p-stored", score=score)


class TestMatch:
    @pytest.mark.asyncio
    async def test_unknown_customer(self, engine, customer_repo, sample_customer):
        customer_repo.get_profile.return_value = None

        with pytest.raises(CustomerNotFoundError):
            await engine.match(sample_customer.id)

    @pytest.mark.asyncio
    async def test_computes_and_stores_when_nothing_cached(
        self, engine, program_repo, result_repo, sample_customer, sample_program,
    ):
        results = await engine.match(sample_customer.id)

        assert [(r.program_id, r.score) for r in results] == [(sample_program.id, 85)]
        assert result_repo.replace_calls == 1
        assert result_repo.rows == results
        program_repo.list_active.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_serves_cached_results(self, engine, program_repo, result_repo, sample_customer):
        result_repo.seed([_stored(sample_customer.id)])

        results = await engine.match(sample_customer.id)

        assert [r.program_id for r in results] == ["p-stored"]
        program_repo.list_active.assert_not_awaited()
        assert result_repo.replace_calls == 0

    @pytest.mark.asyncio
    async def test_cached_results_respect_min_score(
        self, engine, program_repo, result_repo, sample_customer,
    ):
        result_repo.seed([_stored(sample_customer.id, score=40)])

        results = await engine.match(sample_customer.id, min_score=50)

        # The stored run covers a stricter threshold, even with nothing left
        assert results == []
        assert result_repo.replace_calls == 0
        program_repo.list_active.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_lower_threshold_than_stored_run_recomputes(
        self, engine, program_repo, result_repo, sample_customer,
    ):
        result_repo.seed([_stored(sample_customer.id, score=70)], min_score=60)

        await engine.match(sample_customer.id, min_score=30)

        assert result_repo.replace_calls == 1
        assert result_repo.run.min_score == 30

    @pytest.mark.asyncio
    async def test_larger_cap_than_full_stored_run_recomputes(
        self, engine, result_repo, sample_customer,
    ):
        result_repo.seed([_stored(sample_customer.id)], max_results=1)

        await engine.match(sample_customer.id, max_results=10)

        assert result_repo.replace_calls == 1

    @pytest.mark.asyncio
    async def test_empty_result_set_is_cached(
        self, engine, program_repo, result_repo, sample_customer,
    ):
        program_repo.list_active.return_value = []

        first = await engine.match(sample_customer.id)
        second = await engine.match(sample_customer.id)

        assert first == second == []
        program_repo.list_active.assert_awaited_once()
        assert result_repo.replace_calls == 1

    @pytest.mark.asyncio
    async def test_force_refresh_replaces_cached_set(
        self, engine, program_repo, result_repo, sample_customer, sample_program,
    ):
        result_repo.seed([_stored(sample_customer.id)])

        results = await engine.match(sample_customer.id, force_refresh=True)

        assert [r.program_id for r in results] == [sample_program.id]
        assert result_repo.rows == results
        program_repo.list_active.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_empty_catalog_clears_results(self, engine, program_repo, result_repo, sample_customer):
        result_repo.seed([_stored(sample_customer.id)])
        program_repo.list_active.return_value = []

        results = await engine.match(sample_customer.id, force_refresh=True)

        assert results == []
        assert result_repo.rows == []

    @pytest.mark.asyncio
    async def test_max_results_caps_output(self, engine, program_repo, sample_customer, sample_program):
        program_repo.list_active.return_value = [
            sample_program.model_copy(update={"id": f"p{i}"}) for i in range(5)
        ]

        results = await engine.match(sample_customer.id, max_results=2)

        assert len(results) == 2


class TestConcurrentMatch:
    @pytest.mark.asyncio
    async def test_identical_requests_share_one_computation(
        self, engine, program_repo, result_repo, sample_customer, sample_program,
    ):
        async def slow_catalog():
            await asyncio.sleep(0.05)
            return [sample_program]

        program_repo.list_active.side_effect = slow_catalog

        first, second = await asyncio.gather(
            engine.match(sample_customer.id, force_refresh=True),
            engine.match(sample_customer.id, force_refresh=True),
        )

        assert first == second
        assert program_repo.list_active.await_count == 1
        assert result_repo.replace_calls == 1

    @pytest.mark.asyncio
    async def test_waiting_request_reuses_fresh_results(
        self, engine, program_repo, result_repo, sample_customer, sample_program,
    ):
        async def slow_catalog():
            await asyncio.sleep(0.05)
            return [sample_program]

        program_repo.list_active.side_effect = slow_catalog

        await asyncio.gather(
            engine.match(sample_customer.id, max_results=10),
            engine.match(sample_customer.id, max_results=20),
        )

        assert result_repo.replace_calls == 1

    @pytest.mark.asyncio
    async def test_cancelled_caller_does_not_abort_shared_work(
        self, engine, program_repo, result_repo, sample_customer, sample_program,
    ):
        async def slow_catalog():
            await asyncio.sleep(0.05)
            return [sample_program]

        program_repo.list_active.side_effect = slow_catalog

        impatient = asyncio.create_task(engine.match(sample_customer.id, force_refresh=True))
        patient = asyncio.create_task(engine.match(sample_customer.id, force_refresh=True))
        await asyncio.sleep(0.01)
        impatient.cancel()

        results = await patient

        assert len(results) == 1
        assert result_repo.replace_calls == 1


class TestGetResults:
    @pytest.mark.asyncio
    async def test_reads_without_computing(self, engine, program_repo, result_repo, sample_customer):
        result_repo.seed([_stored(sample_customer.id, 70), _stored(sample_customer.id, 20)])

        results, total = await engine.get_results(sample_customer.id, min_score=0, limit=1)

        assert len(results) == 1
        assert total == 2
        program_repo.list_active.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unknown_customer(self, engine, customer_repo, sample_customer):
        customer_repo.exists.return_value = False

        with pytest.raises(CustomerNotFoundError):
            await engine.get_results(sample_customer.id)


class TestMatchingRun:
    def test_covers_stricter_threshold(self):
        run = MatchingRun("c", min_score=30, max_results=50, result_count=0)

        assert run.covers(30, 50)
        assert run.covers(60, 10)
        assert not run.covers(20, 50)

    def test_cap_only_matters_when_run_was_full(self):
        partial = MatchingRun("c", min_score=30, max_results=5, result_count=3)
        full = MatchingRun("c", min_score=30, max_results=5, result_count=5)

        assert partial.covers(30, 100)
        assert not full.covers(30, 100)
        assert full.covers(30, 5)

"""Tests for rule-based scoring and ranking."""

from datetime import datetime, timedelta, timezone

import pytest

from grantsync.matching.config import MatchingConfig
from grantsync.matching.schemas import CustomerProfile, MatchingResult
from grantsync.matching.scoring import (
    calculate_score,
    match_industry,
    match_keywords,
    match_location,
    rank_programs,
)

NOW = datetime(2026, 10, 19, tzinfo=timezone.utc)


def _program(sample_program, **overrides):
    return sample_program.model_copy(update=overrides)


class TestComponentMatchers:
    def test_industry_containment_is_case_insensitive(self):
        assert match_industry("it", ["IT서비스"])
        assert not match_industry("바이오", ["IT"])

    def test_industry_wildcard(self):
        assert match_industry("바이오", ["전체"])

    def test_industry_missing_inputs(self):
        assert not match_industry(None, ["IT"])
        assert not match_industry("IT", [])

    def test_location_wildcard(self):
        assert match_location("부산", ["전국"])

    def test_location_containment(self):
        assert match_location("서울", ["서울특별시"])
        assert not match_location("부산", ["서울"])

    def test_keywords_preferred_is_subset(self):
        customer = CustomerProfile(
            id="c",
            challenges=["자금 조달", "funding gap"],
            goals=["해외 수출"],
            preferred_keywords=["AI 도입"],
        )

        matched, preferred = match_keywords(customer, ["AI", "funding", "수출", "바이오", "AI"])

        assert matched == ["AI", "funding", "수출"]
        assert preferred == ["AI"]


class TestCalculateScore:
    def test_full_match_example(self, sample_customer, sample_program):
        breakdown = calculate_score(sample_customer, sample_program)

        assert breakdown.industry_score == 30
        assert breakdown.location_score == 30
        assert breakdown.keyword_score == 25
        assert breakdown.total == 85
        assert breakdown.matched_keywords == ("AI",)
        assert breakdown.matched_industry and breakdown.matched_location

    def test_keyword_component_is_capped(self, sample_customer, sample_program):
        customer = CustomerProfile(
            id=sample_customer.id,
            preferred_keywords=["AI", "funding", "export", "R&D"],
        )
        program = _program(sample_program, keywords=["AI", "funding", "export", "R&D"])

        breakdown = calculate_score(customer, program)

        assert breakdown.keyword_score == 40

    def test_no_overlap_scores_zero(self, sample_program):
        customer = CustomerProfile(id="c", industry="농업", location="제주")

        assert calculate_score(customer, sample_program).total == 0

    def test_custom_weights(self, sample_customer, sample_program):
        config = MatchingConfig(industry_weight=20, location_weight=20, keyword_max=60)

        assert calculate_score(sample_customer, sample_program, config).total == 65

    def test_weights_must_fit_in_100(self):
        with pytest.raises(ValueError):
            MatchingConfig(industry_weight=50, location_weight=40, keyword_max=40)

    @pytest.mark.parametrize("audience,location", [
        (["전체"], ["전국"]),
        (["IT", "바이오"], ["Seoul", "Busan"]),
        ([], []),
    ])
    def test_score_stays_in_bounds(self, sample_customer, sample_program, audience, location):
        program = _program(sample_program, target_audience=audience, target_location=location)

        total = calculate_score(sample_customer, program).total

        assert 0 <= total <= 100


class TestRankPrograms:
    def test_orders_by_score_then_recency(self, sample_customer, sample_program):
        older = _program(sample_program, id="a", registered_at=NOW - timedelta(days=10))
        newer = _program(sample_program, id="b", registered_at=NOW - timedelta(days=1))
        weaker = _program(sample_program, id="c", target_location=["Busan"], registered_at=NOW)

        results = rank_programs(sample_customer, [older, weaker, newer], min_score=0, max_results=10, now=NOW)

        assert [r.program_id for r in results] == ["b", "a", "c"]
        assert [r.score for r in results] == [85, 85, 55]

    def test_min_score_filter_and_cap(self, sample_customer, sample_program):
        programs = [
            _program(sample_program, id=str(i), registered_at=NOW - timedelta(days=i))
            for i in range(5)
        ]
        programs.append(_program(sample_program, id="low", target_audience=["농업"], target_location=["제주"], keywords=[]))

        results = rank_programs(sample_customer, programs, min_score=30, max_results=3, now=NOW)

        assert [r.program_id for r in results] == ["0", "1", "2"]
        assert all(r.score >= 30 for r in results)

    def test_unsaved_programs_are_ignored(self, sample_customer, sample_program):
        results = rank_programs(sample_customer, [_program(sample_program, id=None)], 0, 10)

        assert results == []

    def test_result_carries_program_summary(self, sample_customer, sample_program):
        [result] = rank_programs(sample_customer, [sample_program], 0, 10, now=NOW)

        assert result.customer_id == sample_customer.id
        assert result.created_at == NOW
        assert result.program["title"] == sample_program.title
        assert result.to_dict()["matched_keywords"] == ["AI"]


class TestMatchingResult:
    @pytest.mark.parametrize("score", [-1, 101])
    def test_score_bounds(self, score):
        with pytest.raises(ValueError):
            MatchingResult(customer_id="c", program_id="p", score=score)

    def test_to_dict_omits_missing_program(self):
        data = MatchingResult(customer_id="c", program_id="p", score=50).to_dict()

        assert "program" not in data

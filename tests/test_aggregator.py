"""Tests for src/aggregator.py."""

import pytest

from src.aggregator import aggregate_pillars, weighted_average
from src.expertise import ExpertiseProfile
from src.pillars import EIGHT_PILLARS, SEVEN_PILLARS
from tests.conftest import all_metrics, make_result


def test_weighted_average_skips_nulls():
    assert weighted_average([(8, 0.4), (4, 0.1), (None, 0.5)]) == pytest.approx(7.2)


def test_weighted_average_all_null_is_none():
    assert weighted_average([(None, 0.4), (None, 0.2)]) is None
    assert weighted_average([]) is None


def test_weighted_average_zero_weight_falls_back_to_mean():
    assert weighted_average([(2, 0.0), (6, 0.0)]) == 4


def test_aggregate_weights_by_expertise():
    results = [
        make_result(agent_name="sdet", metrics={**all_metrics(5), "testCoverage": 9}),
        make_result(agent_name="business-analyst", metrics={**all_metrics(5), "testCoverage": 3}),
    ]
    profiles = {
        "sdet": ExpertiseProfile({"testCoverage": 0.4}),
        "business-analyst": ExpertiseProfile({"testCoverage": 0.1}),
    }
    scores = aggregate_pillars(results, profiles)
    assert set(scores) == set(SEVEN_PILLARS)
    # (9 * 0.4 + 3 * 0.1) / 0.5
    assert scores["testCoverage"] == pytest.approx(7.8)
    # nobody weights codeQuality, so it is the plain mean
    assert scores["codeQuality"] == 5


def test_aggregate_keeps_null_when_every_agent_abstains():
    results = [make_result(metrics={**all_metrics(5), "functionalImpact": None})]
    scores = aggregate_pillars(results, {"sdet": ExpertiseProfile({"functionalImpact": 0.2})})
    assert scores["functionalImpact"] is None


def test_aggregate_agent_without_profile_weighs_nothing():
    results = [
        make_result(agent_name="sdet", metrics={**all_metrics(5), "codeQuality": 8}),
        make_result(agent_name="stranger", metrics={**all_metrics(5), "codeQuality": 0}),
    ]
    scores = aggregate_pillars(results, {"sdet": ExpertiseProfile({"codeQuality": 0.3})})
    assert scores["codeQuality"] == pytest.approx(8)


def test_aggregate_eight_pillars():
    results = [make_result(metrics={**all_metrics(5), "debtReductionHours": 2})]
    scores = aggregate_pillars(results, {"sdet": ExpertiseProfile({"debtReductionHours": 0.1})}, EIGHT_PILLARS)
    assert scores["debtReductionHours"] == pytest.approx(2)

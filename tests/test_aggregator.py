import pytest
from pydantic import ValidationError

from prompt_ab.analysis import (
    PrimaryMetric,
    VariantResult,
    calculate_variant_metrics,
    determine_winner,
)
from prompt_ab.errors import UnknownMetricError

from conftest import make_result


def test_metrics_for_variant_without_results_are_neutral():
    results = [make_result("a")]

    metrics = calculate_variant_metrics(results, "b")

    assert metrics.variant_id == "b"
    assert metrics.total_samples == 0
    assert metrics.error_rate == 0
    assert metrics.average_cost == 0
    assert metrics.average_latency_ms == 0
    assert metrics.cost_efficiency == 0
    assert metrics.performance_score == 0
    assert metrics.average_quality is None


def test_metrics_average_successful_calls_only():
    results = [
        make_result("a", cost=0.002, latency_ms=400, prompt_tokens=50, completion_tokens=50),
        make_result("a", cost=0.004, latency_ms=600, prompt_tokens=100, completion_tokens=100),
        make_result("a", cost=0.0, latency_ms=30_000, error="timeout"),
        make_result("b", cost=1.0),
    ]

    metrics = calculate_variant_metrics(results, "a")

    assert metrics.total_samples == 3
    assert metrics.success_count == 2
    assert metrics.error_count == 1
    assert metrics.error_rate == pytest.approx(1 / 3)
    assert metrics.average_cost == pytest.approx(0.003)
    assert metrics.average_latency_ms == pytest.approx(500)
    assert metrics.average_tokens == pytest.approx(150)
    assert metrics.total_tokens == 300
    assert metrics.cost_efficiency == pytest.approx(1 / 0.003)
    assert metrics.performance_score == pytest.approx(1 / (3 + 0.5))


def test_metrics_when_every_call_failed():
    results = [make_result("a", error="rate limited"), make_result("a", error="boom")]

    metrics = calculate_variant_metrics(results, "a")

    assert metrics.total_samples == 2
    assert metrics.error_rate == 1
    assert metrics.average_cost == 0


def test_total_tokens_derived_from_parts():
    result = VariantResult(variant_id="a", prompt_tokens=12, completion_tokens=30)
    assert result.total_tokens == 42


@pytest.mark.parametrize("field", ["cost", "latency_ms"])
@pytest.mark.parametrize("value", [float("nan"), float("inf")])
def test_results_reject_non_finite_cost_and_latency(field, value):
    with pytest.raises(ValidationError):
        VariantResult(variant_id="a", **{field: value})


def test_winner_on_cost_prefers_cheaper_variant():
    results = [
        make_result("a", cost=0.001),
        make_result("a", cost=0.0012),
        make_result("b", cost=0.003),
        make_result("b", cost=0.0031),
    ]

    outcome = determine_winner(["a", "b"], results, "cost")

    assert outcome.winner_variant_id == "a"
    assert outcome.primary_metric == PrimaryMetric.COST
    assert [m.variant_id for m in outcome.metrics] == ["a", "b"]
    assert len(outcome.comparisons) == 1


def test_winner_on_latency_and_tokens():
    results = [
        make_result("a", cost=0.001, latency_ms=900, prompt_tokens=10, completion_tokens=10),
        make_result("b", cost=0.002, latency_ms=300, prompt_tokens=100, completion_tokens=100),
    ]

    assert determine_winner(["a", "b"], results, "latency").winner_variant_id == "b"
    assert determine_winner(["a", "b"], results, "tokens").winner_variant_id == "a"


def test_winner_on_quality_prefers_higher_score():
    results = [
        make_result("a", quality_score=0.6),
        make_result("b", quality_score=0.9),
    ]

    assert determine_winner(["a", "b"], results, "quality").winner_variant_id == "b"


def test_ties_go_to_first_variant_in_input_order():
    results = [make_result("a", cost=0.002), make_result("b", cost=0.002)]

    assert determine_winner(["b", "a"], results, "cost").winner_variant_id == "b"
    assert determine_winner(["a", "b"], results, "cost").winner_variant_id == "a"


def test_custom_metric_maps_to_cost():
    results = [make_result("a", cost=0.005), make_result("b", cost=0.001)]

    outcome = determine_winner(["a", "b"], results, "custom")

    assert outcome.requested_metric == "custom"
    assert outcome.primary_metric == PrimaryMetric.COST
    assert outcome.winner_variant_id == "b"


def test_unknown_metric_falls_back_to_cost():
    results = [make_result("a", cost=0.005), make_result("b", cost=0.001)]

    outcome = determine_winner(["a", "b"], results, "vibes")

    assert outcome.primary_metric == PrimaryMetric.COST
    assert outcome.winner_variant_id == "b"


def test_unknown_metric_raises_in_strict_mode():
    with pytest.raises(UnknownMetricError):
        determine_winner(["a"], [make_result("a")], "vibes", strict=True)


def test_empty_results_yield_no_data():
    outcome = determine_winner(["a", "b"], [], "cost")

    assert outcome.status == "no_data"
    assert outcome.winner_variant_id is None
    assert outcome.raw_data.total_samples == 0
    assert all(m.total_samples == 0 for m in outcome.metrics)


def test_empty_variant_list_yields_no_data():
    assert determine_winner([], [make_result("a")]).status == "no_data"


def test_variant_without_samples_cannot_win():
    results = [make_result("b", cost=0.01)]

    outcome = determine_winner(["a", "b"], results, "cost")

    assert outcome.winner_variant_id == "b"


def test_only_failed_results_yield_no_data():
    results = [make_result("a", error="boom"), make_result("b", error="boom")]

    outcome = determine_winner(["a", "b"], results)

    assert outcome.status == "no_data"
    assert outcome.raw_data.error_count == 2


def test_variants_accept_objects_with_id():
    class Variant:
        def __init__(self, id):
            self.id = id

    results = [make_result("a", cost=0.003), make_result("b", cost=0.001)]

    outcome = determine_winner([Variant("a"), Variant("b")], results)

    assert outcome.winner_variant_id == "b"


def test_significant_winner_with_many_samples():
    results = [make_result("a", cost=0.001 + i * 1e-6) for i in range(12)]
    results += [make_result("b", cost=0.005 + i * 1e-6) for i in range(12)]

    outcome = determine_winner(["a", "b"], results, "cost")

    assert outcome.status == "significant"
    assert outcome.winner_variant_id == "a"
    assert outcome.confidence == pytest.approx(0.95)
    assert outcome.insights.cost_savings == pytest.approx((0.003 - 0.001) * 24, rel=1e-3)


def test_small_sample_is_incomplete():
    results = [make_result("a", cost=0.001), make_result("b", cost=0.002)]

    outcome = determine_winner(["a", "b"], results, "cost")

    assert outcome.status == "incomplete"
    assert outcome.confidence == pytest.approx(0.5)
    assert "Increase sample size for more robust results" in outcome.insights.recommendations


def test_raw_data_counts_only_requested_variants():
    results = [
        make_result("a", cost=0.001, latency_ms=100),
        make_result("b", cost=0.002, latency_ms=200, error="bad gateway"),
        make_result("c", cost=9.0, latency_ms=9000),
    ]

    raw = determine_winner(["a", "b"], results).raw_data

    assert raw.total_samples == 2
    assert raw.total_cost == pytest.approx(0.003)
    assert raw.total_latency_ms == pytest.approx(300)
    assert raw.error_count == 1

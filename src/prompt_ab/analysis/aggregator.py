from __future__ import annotations

import logging
from collections.abc import Sequence
from itertools import combinations
from typing import Any

from prompt_ab.analysis.metrics import (
    calculate_variant_metrics,
    is_better,
    resolve_metric,
    successful,
)
from prompt_ab.analysis.models import (
    Insights,
    PrimaryMetric,
    RawData,
    VariantComparison,
    VariantMetrics,
    VariantResult,
    WinnerResult,
)
from prompt_ab.analysis.statistics import MIN_SAMPLES_FOR_DECISION, compare_variants

logger = logging.getLogger(__name__)

ROBUST_SAMPLE_SIZE = 30


def _variant_ids(variants: Sequence[Any]) -> list[str]:
    ids = [str(getattr(v, "id", v)) for v in variants]
    return list(dict.fromkeys(ids))


def _raw_data(results: Sequence[VariantResult]) -> RawData:
    return RawData(
        total_samples=len(results),
        total_cost=sum(r.cost for r in results),
        total_latency_ms=sum(r.latency_ms for r in results),
        error_count=sum(1 for r in results if not r.succeeded),
    )


def _insights(
    results: Sequence[VariantResult], best: VariantMetrics
) -> Insights:
    ok = successful(results)
    average_cost = sum(r.cost for r in ok) / len(ok)
    savings = (average_cost - best.average_cost) * len(ok)

    recommendations = [
        f"Deploy {best.variant_id} as the winning variant",
        f"Potential cost savings: ${max(savings, 0.0):.4f} at current test volume",
        "Monitor performance metrics continuously",
        "Consider testing additional variants to optimize further",
    ]
    if best.success_count < ROBUST_SAMPLE_SIZE:
        recommendations.append("Increase sample size for more robust results")

    return Insights(
        cost_savings=savings if savings > 0 else None,
        performance_gain=best.performance_score,
        quality_improvement=best.average_quality,
        recommendations=recommendations,
    )


def determine_winner(
    variants: Sequence[Any],
    results: Sequence[VariantResult],
    primary_metric: PrimaryMetric | str = PrimaryMetric.COST,
    *,
    strict: bool = False,
) -> WinnerResult:
    """Pick the best variant on ``primary_metric`` and explain the choice.

    ``variants`` holds ids (or objects exposing ``.id``); their order breaks
    ties. Only variants with at least one successful call can win. When none
    has any, the result has ``status="no_data"`` and no winner.
    """
    metric = resolve_metric(primary_metric, strict=strict)
    requested = str(getattr(primary_metric, "value", primary_metric))
    ids = _variant_ids(variants)
    wanted = set(ids)
    in_scope = [r for r in results if r.variant_id in wanted]
    table = [calculate_variant_metrics(in_scope, vid) for vid in ids]
    raw_data = _raw_data(in_scope)

    eligible = [m for m in table if m.success_count > 0]
    if not eligible:
        logger.info("No successful results for variants %s", ids)
        return WinnerResult(
            status="no_data",
            requested_metric=requested,
            primary_metric=metric,
            reasoning="No successful results recorded for any variant",
            metrics=table,
            raw_data=raw_data,
        )

    best = eligible[0]
    for candidate in eligible[1:]:
        if is_better(candidate, best, metric):
            best = candidate

    comparisons: list[VariantComparison] = [
        compare_variants(a, b, in_scope, metric) for a, b in combinations(ids, 2)
    ]
    significant = [
        c
        for c in comparisons
        if c.statistical.significant and c.recommendation.winner == best.variant_id
    ]

    reasoning = f"{best.variant_id} selected based on {metric.value} optimization"
    if significant:
        confidence = 0.95
        reasoning += " with statistical significance (p < 0.05)"
    elif best.success_count >= MIN_SAMPLES_FOR_DECISION:
        confidence = 0.8
        reasoning += " with sufficient sample size but no statistical significance"
    else:
        confidence = 0.5

    if significant:
        status = "significant"
    elif len(in_scope) >= len(ids) * MIN_SAMPLES_FOR_DECISION:
        status = "inconclusive"
    else:
        status = "incomplete"

    logger.info(
        "Winner on %s: %s (status=%s, confidence=%.2f)",
        metric.value,
        best.variant_id,
        status,
        confidence,
    )
    return WinnerResult(
        status=status,
        requested_metric=requested,
        primary_metric=metric,
        winner_variant_id=best.variant_id,
        confidence=confidence,
        reasoning=reasoning,
        metrics=table,
        comparisons=comparisons,
        insights=_insights(in_scope, best),
        raw_data=raw_data,
    )


__all__ = ["calculate_variant_metrics", "determine_winner"]

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence

from prompt_ab.analysis.models import PrimaryMetric, VariantMetrics, VariantResult
from prompt_ab.errors import UnknownMetricError

logger = logging.getLogger(__name__)

# Neutral quality for calls that were never scored.
DEFAULT_QUALITY = 0.5


def resolve_metric(name: PrimaryMetric | str, *, strict: bool = False) -> PrimaryMetric:
    """Map a metric name onto the metric actually used for ranking.

    ``custom`` ranks by cost. Unknown names also rank by cost unless ``strict``
    is set, in which case they raise ``UnknownMetricError``.
    """
    try:
        metric = PrimaryMetric(str(getattr(name, "value", name)).strip().lower())
    except ValueError:
        if strict:
            raise UnknownMetricError(f"Unknown primary metric: {name!r}") from None
        logger.warning("Unknown primary metric %r, falling back to cost", name)
        return PrimaryMetric.COST
    if metric is PrimaryMetric.CUSTOM:
        return PrimaryMetric.COST
    return metric


def successful(results: Iterable[VariantResult]) -> list[VariantResult]:
    return [r for r in results if r.succeeded]


def extract_values(results: Iterable[VariantResult], metric: PrimaryMetric) -> list[float]:
    if metric is PrimaryMetric.LATENCY:
        return [r.latency_ms for r in results]
    if metric is PrimaryMetric.TOKENS:
        return [float(r.total_tokens or 0) for r in results]
    if metric is PrimaryMetric.QUALITY:
        return [
            r.quality_score if r.quality_score is not None else DEFAULT_QUALITY
            for r in results
        ]
    return [r.cost for r in results]


def calculate_variant_metrics(
    results: Sequence[VariantResult], variant_id: str
) -> VariantMetrics:
    variant_results = [r for r in results if r.variant_id == variant_id]
    ok = successful(variant_results)
    total = len(variant_results)
    errors = total - len(ok)

    if not ok:
        return VariantMetrics(
            variant_id=variant_id,
            total_samples=total,
            error_count=errors,
            error_rate=errors / total if total else 0.0,
        )

    count = len(ok)
    total_cost = sum(r.cost for r in ok)
    total_tokens = sum(r.total_tokens or 0 for r in ok)
    average_cost = total_cost / count
    average_latency = sum(r.latency_ms for r in ok) / count
    scored = [r.quality_score for r in ok if r.quality_score is not None]
    denominator = average_cost * 1000 + average_latency / 1000

    return VariantMetrics(
        variant_id=variant_id,
        total_samples=total,
        success_count=count,
        error_count=errors,
        error_rate=errors / total,
        average_cost=average_cost,
        average_latency_ms=average_latency,
        average_tokens=total_tokens / count,
        average_quality=sum(scored) / len(scored) if scored else None,
        total_cost=total_cost,
        total_tokens=total_tokens,
        cost_efficiency=1 / average_cost if average_cost > 0 else 0.0,
        performance_score=1 / denominator if denominator > 0 else 0.0,
    )


def metric_value(metrics: VariantMetrics, metric: PrimaryMetric) -> float:
    if metric is PrimaryMetric.LATENCY:
        return metrics.average_latency_ms
    if metric is PrimaryMetric.TOKENS:
        return metrics.average_tokens
    if metric is PrimaryMetric.QUALITY:
        if metrics.average_quality is None:
            return DEFAULT_QUALITY if metrics.success_count else 0.0
        return metrics.average_quality
    return metrics.average_cost


def is_better(candidate: VariantMetrics, best: VariantMetrics, metric: PrimaryMetric) -> bool:
    # Strict comparison keeps the earlier variant on ties.
    if metric.lower_is_better:
        return metric_value(candidate, metric) < metric_value(best, metric)
    return metric_value(candidate, metric) > metric_value(best, metric)

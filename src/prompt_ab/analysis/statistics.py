"""Significance testing between two prompt variants.

Welch's t-test is used throughout since variants rarely share a variance.
P-values for small samples come from a coarse critical-value table rather
than the exact Student t distribution; they are good enough to rank a demo
A/B test, not to publish.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence

from prompt_ab.analysis.metrics import (
    calculate_variant_metrics,
    extract_values,
    is_better,
    metric_value,
    successful,
)
from prompt_ab.analysis.models import (
    ConfidenceInterval,
    PowerAnalysis,
    PrimaryMetric,
    Recommendation,
    StatisticalResult,
    VariantComparison,
    VariantResult,
)

logger = logging.getLogger(__name__)

SIGNIFICANCE_LEVEL = 0.05
MIN_SAMPLES_FOR_DECISION = 10
Z_95 = 1.96

# (critical t, one-tailed p) for df < 30, checked top to bottom.
_SMALL_SAMPLE_TABLE: tuple[tuple[float, float], ...] = (
    (2.6, 0.005),
    (2.0, 0.025),
    (1.5, 0.1),
)


def mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def sample_std(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    m = mean(values)
    return math.sqrt(sum((v - m) ** 2 for v in values) / (len(values) - 1))


def normal_cdf(z: float) -> float:
    return 0.5 * (1 + math.erf(z / math.sqrt(2)))


def one_tailed_p(t: float, df: float) -> float:
    t = abs(t)
    if df >= 30:
        return 1 - normal_cdf(t)
    for critical, p in _SMALL_SAMPLE_TABLE:
        if t >= critical:
            return p
    return 0.25


def welch_t_test(
    sample_a: Sequence[float], sample_b: Sequence[float]
) -> tuple[float | None, float, float]:
    """Return ``(t_statistic, degrees_of_freedom, two_tailed_p)`` for ``a - b``.

    Two constant samples with different means have no finite statistic; the
    difference is certain, so ``t_statistic`` is ``None`` and ``p`` is 0.
    """
    n1, n2 = len(sample_a), len(sample_b)
    mean1, mean2 = mean(sample_a), mean(sample_b)
    var1 = sample_std(sample_a) ** 2 / n1
    var2 = sample_std(sample_b) ** 2 / n2
    se = math.sqrt(var1 + var2)

    if se == 0:
        if mean1 == mean2:
            return 0.0, float(n1 + n2 - 2), 1.0
        return None, float(n1 + n2 - 2), 0.0

    t = (mean1 - mean2) / se
    denominator = var1**2 / (n1 - 1) + var2**2 / (n2 - 1)
    df = (var1 + var2) ** 2 / denominator if denominator else float(n1 + n2 - 2)
    p = min(1.0, one_tailed_p(t, df) * 2)
    return t, df, p


def _power_analysis(effect_size: float | None, n1: int, n2: int) -> PowerAnalysis:
    smallest = min(n1, n2)
    achieved = 0.8 if smallest >= 30 else smallest / 30 * 0.8
    if effect_size is not None and effect_size > 0:
        required = max(30, math.ceil(16 / effect_size**2))
    else:
        required = 30
    return PowerAnalysis(achieved_power=achieved, required_sample_size=required)


def _format_effect(effect_size: float | None) -> str:
    return "n/a" if effect_size is None else f"{effect_size:.3f}"


def _insufficient_data(n1: int, n2: int) -> StatisticalResult:
    return StatisticalResult(
        significant=False,
        p_value=1.0,
        sample_size_a=n1,
        sample_size_b=n2,
        power=PowerAnalysis(achieved_power=0.0, required_sample_size=MIN_SAMPLES_FOR_DECISION),
    )


def calculate_significance(
    control: Sequence[VariantResult],
    treatment: Sequence[VariantResult],
    metric: PrimaryMetric = PrimaryMetric.COST,
) -> StatisticalResult:
    control_values = extract_values(successful(control), metric)
    treatment_values = extract_values(successful(treatment), metric)
    n1, n2 = len(control_values), len(treatment_values)

    if n1 < 2 or n2 < 2:
        return _insufficient_data(n1, n2)

    t, df, p = welch_t_test(control_values, treatment_values)

    mean1, mean2 = mean(control_values), mean(treatment_values)
    std1, std2 = sample_std(control_values), sample_std(treatment_values)
    pooled = math.sqrt(((n1 - 1) * std1**2 + (n2 - 1) * std2**2) / (n1 + n2 - 2))
    diff = mean2 - mean1
    if pooled > 0:
        effect_size = abs(diff) / pooled
    else:
        effect_size = 0.0 if diff == 0 else None

    margin = Z_95 * math.sqrt(std1**2 / n1 + std2**2 / n2)

    result = StatisticalResult(
        significant=p < SIGNIFICANCE_LEVEL,
        p_value=p,
        t_statistic=t,
        degrees_of_freedom=df,
        confidence_interval=ConfidenceInterval(lower=diff - margin, upper=diff + margin),
        effect_size=effect_size,
        sample_size_a=n1,
        sample_size_b=n2,
        power=_power_analysis(effect_size, n1, n2),
    )
    logger.debug(
        "Significance on %s: n=(%d, %d) p=%.6f d=%s",
        metric.value,
        n1,
        n2,
        p,
        effect_size,
    )
    return result


def compare_variants(
    variant_a: str,
    variant_b: str,
    results: Sequence[VariantResult],
    metric: PrimaryMetric = PrimaryMetric.COST,
) -> VariantComparison:
    results_a = [r for r in results if r.variant_id == variant_a]
    results_b = [r for r in results if r.variant_id == variant_b]
    metrics_a = calculate_variant_metrics(results_a, variant_a)
    metrics_b = calculate_variant_metrics(results_b, variant_b)
    statistical = calculate_significance(results_a, results_b, metric)

    leader, trailer = (
        (metrics_b, metrics_a) if is_better(metrics_b, metrics_a, metric) else (metrics_a, metrics_b)
    )

    if statistical.significant:
        base = metric_value(trailer, metric)
        delta = metric_value(leader, metric) - base
        change = f"{abs(delta) / base * 100:.1f}%" if base else "n/a"
        recommendation = Recommendation(
            winner=leader.variant_id,
            confidence="high",
            reasoning=(
                f"{leader.variant_id} is significantly better on {metric.value} "
                f"(p = {statistical.p_value:.4f}). Difference: {change}, "
                f"effect size: {_format_effect(statistical.effect_size)}"
            ),
            action_required=f"Deploy {leader.variant_id}",
        )
    elif (
        statistical.sample_size_a >= MIN_SAMPLES_FOR_DECISION
        and statistical.sample_size_b >= MIN_SAMPLES_FOR_DECISION
    ):
        recommendation = Recommendation(
            confidence="medium",
            reasoning=(
                f"{leader.variant_id} leads on {metric.value} but the difference is not "
                f"significant (p = {statistical.p_value:.4f})"
            ),
            action_required=(
                f"Continue testing until {statistical.power.required_sample_size} "
                "samples per variant"
            ),
        )
    else:
        recommendation = Recommendation(
            confidence="low",
            reasoning=(
                f"Insufficient data: need at least {MIN_SAMPLES_FOR_DECISION} samples per "
                f"variant (current: {variant_a}={statistical.sample_size_a}, "
                f"{variant_b}={statistical.sample_size_b})"
            ),
            action_required="Collect more data before making decisions",
        )

    return VariantComparison(
        metric=metric,
        variant_a=metrics_a,
        variant_b=metrics_b,
        statistical=statistical,
        recommendation=recommendation,
    )

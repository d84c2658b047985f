from prompt_ab.analysis.aggregator import calculate_variant_metrics, determine_winner
from prompt_ab.analysis.metrics import resolve_metric
from prompt_ab.analysis.models import (
    PrimaryMetric,
    StatisticalResult,
    VariantComparison,
    VariantMetrics,
    VariantResult,
    WinnerResult,
)
from prompt_ab.analysis.statistics import calculate_significance, compare_variants

__all__ = [
    "PrimaryMetric",
    "StatisticalResult",
    "VariantComparison",
    "VariantMetrics",
    "VariantResult",
    "WinnerResult",
    "calculate_significance",
    "calculate_variant_metrics",
    "compare_variants",
    "determine_winner",
    "resolve_metric",
]

from prompt_ab.pricing.calculator import (
    DEFAULT_PRICING,
    CostAnalytics,
    CostBreakdown,
    CostCalculator,
    PricingTier,
    TokenUsage,
)

__all__ = [
    "DEFAULT_PRICING",
    "CostAnalytics",
    "CostBreakdown",
    "CostCalculator",
    "PricingTier",
    "TokenUsage",
]

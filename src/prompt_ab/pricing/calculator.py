from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import datetime

from pydantic import BaseModel, Field

from prompt_ab.models import utc_now

logger = logging.getLogger(__name__)

DEFAULT_MODEL_KEY = "default"
CHARS_PER_TOKEN = 4
DAYS_PER_MONTH = 30


class PricingTier(BaseModel):
    # USD per 1K tokens.
    input: float = Field(ge=0)
    output: float = Field(ge=0)
    effective_date: datetime | None = None
    deprecated: bool = False


class TokenUsage(BaseModel):
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    model: str = DEFAULT_MODEL_KEY

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


class CostBreakdown(BaseModel):
    prompt: float = 0.0
    completion: float = 0.0
    total: float = 0.0
    model: str
    currency: str = "USD"


class CostAnalytics(BaseModel):
    total_cost: float = 0.0
    total_tokens: int = 0
    by_model: dict[str, CostBreakdown] = Field(default_factory=dict)
    average_cost_per_token: float = 0.0
    most_expensive_model: str | None = None


class SavingsReport(BaseModel):
    original_cost: float
    new_cost: float
    savings: float
    savings_percentage: float


class ModelRanking(BaseModel):
    model: str
    cost: float
    ranking: int


class MonthlyProjection(BaseModel):
    daily_average: float
    monthly_projection: float
    breakdown: dict[str, float] = Field(default_factory=dict)


DEFAULT_PRICING: dict[str, PricingTier] = {
    "gpt-4": PricingTier(input=0.03, output=0.06),
    "gpt-4-turbo": PricingTier(input=0.01, output=0.03),
    "gpt-4-turbo-preview": PricingTier(input=0.01, output=0.03),
    "gpt-4-1106-preview": PricingTier(input=0.01, output=0.03),
    "gpt-4-0125-preview": PricingTier(input=0.01, output=0.03),
    "gpt-3.5-turbo": PricingTier(input=0.0005, output=0.0015),
    "gpt-3.5-turbo-0125": PricingTier(input=0.0005, output=0.0015),
    "gpt-3.5-turbo-1106": PricingTier(input=0.001, output=0.002),
    "gpt-4o": PricingTier(input=0.005, output=0.015),
    "gpt-4o-mini": PricingTier(input=0.00015, output=0.0006),
    "gpt-4o-2024-05-13": PricingTier(input=0.005, output=0.015),
    "text-davinci-003": PricingTier(input=0.02, output=0.02, deprecated=True),
    "text-curie-001": PricingTier(input=0.002, output=0.002, deprecated=True),
    DEFAULT_MODEL_KEY: PricingTier(input=0.001, output=0.002),
}


class CostCalculator:
    """Turns token usage into dollar cost using a per-model price table."""

    def __init__(
        self,
        pricing: Mapping[str, PricingTier] | None = None,
        currency: str = "USD",
    ) -> None:
        table = pricing if pricing is not None else DEFAULT_PRICING
        self._pricing = {name: tier.model_copy() for name, tier in table.items()}
        self._pricing.setdefault(DEFAULT_MODEL_KEY, DEFAULT_PRICING[DEFAULT_MODEL_KEY])
        self._currency = currency

    def _tier(self, model: str) -> PricingTier:
        return self._pricing.get(model) or self._pricing[DEFAULT_MODEL_KEY]

    def calculate_cost(self, usage: TokenUsage) -> CostBreakdown:
        tier = self._tier(usage.model)
        prompt_cost = usage.prompt_tokens / 1000 * tier.input
        completion_cost = usage.completion_tokens / 1000 * tier.output
        return CostBreakdown(
            prompt=round(prompt_cost, 6),
            completion=round(completion_cost, 6),
            total=round(prompt_cost + completion_cost, 6),
            model=usage.model,
            currency=self._currency,
        )

    def calculate_token_cost(
        self, prompt_tokens: int, completion_tokens: int, model: str
    ) -> CostBreakdown:
        return self.calculate_cost(
            TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                model=model,
            )
        )

    def get_model_pricing(self, model: str) -> PricingTier | None:
        tier = self._pricing.get(model)
        return tier.model_copy() if tier is not None else None

    def get_all_pricing(self) -> dict[str, PricingTier]:
        return {name: tier.model_copy() for name, tier in self._pricing.items()}

    def update_model_pricing(self, model: str, tier: PricingTier) -> None:
        self._pricing[model] = tier.model_copy(update={"effective_date": utc_now()})
        logger.info(
            "Updated pricing for %s: $%s/$%s per 1K tokens", model, tier.input, tier.output
        )

    def estimate_cost(self, prompt_text: str, model: str, max_tokens: int = 100) -> CostBreakdown:
        """Pre-call estimate assuming roughly four characters per token."""
        prompt_tokens = math.ceil(len(prompt_text) / CHARS_PER_TOKEN)
        return self.calculate_token_cost(prompt_tokens, max_tokens, model)

    def compare_models(
        self, usage: TokenUsage, models: Iterable[str]
    ) -> dict[str, CostBreakdown]:
        return {
            model: self.calculate_token_cost(usage.prompt_tokens, usage.completion_tokens, model)
            for model in models
        }

    def aggregate_costs(self, usages: Iterable[TokenUsage]) -> CostAnalytics:
        total_cost = 0.0
        total_tokens = 0
        by_model: dict[str, CostBreakdown] = {}

        for usage in usages:
            cost = self.calculate_cost(usage)
            total_cost += cost.total
            total_tokens += usage.total_tokens
            bucket = by_model.setdefault(
                usage.model, CostBreakdown(model=usage.model, currency=self._currency)
            )
            bucket.prompt += cost.prompt
            bucket.completion += cost.completion
            bucket.total += cost.total

        most_expensive = max(by_model.values(), key=lambda b: b.total, default=None)
        return CostAnalytics(
            total_cost=round(total_cost, 6),
            total_tokens=total_tokens,
            by_model=by_model,
            average_cost_per_token=round(total_cost / total_tokens, 8) if total_tokens else 0.0,
            most_expensive_model=most_expensive.model if most_expensive else None,
        )

    def calculate_savings(
        self, usage: TokenUsage, from_model: str, to_model: str
    ) -> SavingsReport:
        original = self.calculate_token_cost(usage.prompt_tokens, usage.completion_tokens, from_model)
        new = self.calculate_token_cost(usage.prompt_tokens, usage.completion_tokens, to_model)
        savings = original.total - new.total
        percentage = savings / original.total * 100 if original.total > 0 else 0.0
        return SavingsReport(
            original_cost=original.total,
            new_cost=new.total,
            savings=round(savings, 6),
            savings_percentage=round(percentage, 2),
        )

    def get_cost_effectiveness_ranking(self, usage: TokenUsage) -> list[ModelRanking]:
        costs = sorted(
            (
                (model, self.calculate_token_cost(usage.prompt_tokens, usage.completion_tokens, model).total)
                for model, tier in self._pricing.items()
                if model != DEFAULT_MODEL_KEY and not tier.deprecated
            ),
            key=lambda item: item[1],
        )
        return [
            ModelRanking(model=model, cost=cost, ranking=index)
            for index, (model, cost) in enumerate(costs, start=1)
        ]

    @staticmethod
    def format_cost(cost: float, include_symbol: bool = True) -> str:
        symbol = "$" if include_symbol else ""
        if cost < 0.01:
            return f"{symbol}{cost:.6f}"
        if cost < 1:
            return f"{symbol}{cost:.4f}"
        return f"{symbol}{cost:.2f}"

    def project_monthly_cost(self, daily_usages: Iterable[TokenUsage]) -> MonthlyProjection:
        daily = self.aggregate_costs(daily_usages)
        return MonthlyProjection(
            daily_average=round(daily.total_cost, 6),
            monthly_projection=round(daily.total_cost * DAYS_PER_MONTH, 2),
            breakdown={
                model: bucket.total * DAYS_PER_MONTH for model, bucket in daily.by_model.items()
            },
        )

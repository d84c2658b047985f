from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from prompt_ab.models import utc_now


class PrimaryMetric(str, Enum):
    COST = "cost"
    LATENCY = "latency"
    TOKENS = "tokens"
    QUALITY = "quality"
    CUSTOM = "custom"

    @property
    def lower_is_better(self) -> bool:
        return self is not PrimaryMetric.QUALITY


class VariantResult(BaseModel):
    """One evaluated LLM call attributed to a prompt variant."""

    variant_id: str
    input_id: str | None = None
    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int | None = Field(default=None, ge=0)
    cost: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    latency_ms: float = Field(default=0.0, ge=0, allow_inf_nan=False)
    error: str | None = None
    quality_score: float | None = Field(default=None, ge=0, le=1)
    session_id: str | None = None
    trace_id: str | None = None
    timestamp: datetime = Field(default_factory=utc_now)

    @model_validator(mode="after")
    def _fill_total_tokens(self) -> "VariantResult":
        if self.total_tokens is None:
            self.total_tokens = self.prompt_tokens + self.completion_tokens
        return self

    @property
    def succeeded(self) -> bool:
        return not self.error


class VariantMetrics(BaseModel):
    variant_id: str
    total_samples: int = 0
    success_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    average_cost: float = 0.0
    average_latency_ms: float = 0.0
    average_tokens: float = 0.0
    average_quality: float | None = None
    total_cost: float = 0.0
    total_tokens: int = 0
    cost_efficiency: float = 0.0
    performance_score: float = 0.0


class ConfidenceInterval(BaseModel):
    lower: float = 0.0
    upper: float = 0.0


class PowerAnalysis(BaseModel):
    achieved_power: float = 0.0
    required_sample_size: int = 0


class StatisticalResult(BaseModel):
    significant: bool
    p_value: float
    # t_statistic and effect_size are None when both samples are constant but differ
    t_statistic: float | None = 0.0
    degrees_of_freedom: float = 0.0
    confidence_interval: ConfidenceInterval = Field(default_factory=ConfidenceInterval)
    effect_size: float | None = 0.0
    sample_size_a: int
    sample_size_b: int
    power: PowerAnalysis = Field(default_factory=PowerAnalysis)


class Recommendation(BaseModel):
    winner: str | None = None
    reasoning: str
    confidence: Literal["low", "medium", "high"] = "low"
    action_required: str


class VariantComparison(BaseModel):
    metric: PrimaryMetric
    variant_a: VariantMetrics
    variant_b: VariantMetrics
    statistical: StatisticalResult
    recommendation: Recommendation


class Insights(BaseModel):
    cost_savings: float | None = None
    performance_gain: float | None = None
    quality_improvement: float | None = None
    recommendations: list[str] = Field(default_factory=list)


class RawData(BaseModel):
    total_samples: int = 0
    total_cost: float = 0.0
    total_latency_ms: float = 0.0
    error_count: int = 0


class WinnerResult(BaseModel):
    status: Literal["no_data", "incomplete", "inconclusive", "significant"]
    requested_metric: str
    primary_metric: PrimaryMetric
    winner_variant_id: str | None = None
    confidence: float = 0.0
    reasoning: str = ""
    metrics: list[VariantMetrics] = Field(default_factory=list)
    comparisons: list[VariantComparison] = Field(default_factory=list)
    insights: Insights = Field(default_factory=Insights)
    raw_data: RawData = Field(default_factory=RawData)
    generated_at: datetime = Field(default_factory=utc_now)

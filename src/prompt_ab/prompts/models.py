from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from prompt_ab.analysis.models import PrimaryMetric, VariantResult
from prompt_ab.models import utc_now

DEFAULT_MODEL = "gpt-3.5-turbo"
DEFAULT_PARAMETERS: dict[str, Any] = {"temperature": 0.7, "max_tokens": 1000}


class PromptVariable(BaseModel):
    name: str
    description: str | None = None
    default_value: str | None = None
    required: bool = True


class PromptVariant(BaseModel):
    """A versioned prompt template competing in A/B tests."""

    id: str
    name: str
    description: str = ""
    template: str
    variables: list[PromptVariable] = Field(default_factory=list)
    version: int = 1
    parent_id: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    created_by: str = "system"
    tags: list[str] = Field(default_factory=list)
    model: str = DEFAULT_MODEL
    parameters: dict[str, Any] = Field(default_factory=lambda: dict(DEFAULT_PARAMETERS))


class TestInput(BaseModel):
    id: str
    prompt: str
    variables: dict[str, str] = Field(default_factory=dict)
    expected_output: str | None = None
    category: str | None = None


class ABTestStatus(str, Enum):
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"


class ABTestConfiguration(BaseModel):
    min_sample_size: int = Field(default=30, ge=1)
    max_sample_size: int | None = Field(default=None, ge=1)
    confidence_level: float = Field(default=0.95, gt=0, lt=1)
    # Percentages, one per variant. Empty means an even split.
    traffic_split: list[float] = Field(default_factory=list)
    max_duration_seconds: float | None = Field(default=None, gt=0)
    stop_on_significance: bool = False
    primary_metric: PrimaryMetric = PrimaryMetric.COST


class ABTest(BaseModel):
    id: str
    name: str
    description: str = ""
    variant_ids: list[str]
    input_ids: list[str]
    configuration: ABTestConfiguration = Field(default_factory=ABTestConfiguration)
    status: ABTestStatus = ABTestStatus.DRAFT
    results: list[VariantResult] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: str = "system"


class PromptStats(BaseModel):
    total_variants: int = 0
    total_tests: int = 0
    active_tests: int = 0
    total_inputs: int = 0

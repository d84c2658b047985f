from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ABORTED = "aborted"


class Session(BaseModel):
    """Usage envelope for one logical conversation against the LLM API."""

    id: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    metadata: dict[str, Any] = Field(default_factory=dict)
    turns: int = 0
    status: SessionStatus = SessionStatus.ACTIVE
    total_tokens: int = 0
    total_cost: float = 0.0
    traces: list[str] = Field(default_factory=list)


class SessionStats(BaseModel):
    total_sessions: int = 0
    active_sessions: int = 0
    completed_sessions: int = 0
    aborted_sessions: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    average_tokens_per_session: float = 0.0
    average_cost_per_session: float = 0.0


class SessionSummary(BaseModel):
    # Derived reporting view; never stored.
    id: str
    status: SessionStatus
    duration_seconds: float
    turns: int
    total_tokens: int
    total_cost: float
    avg_tokens_per_turn: float
    avg_cost_per_turn: float
    trace_count: int
    metadata: dict[str, Any] = Field(default_factory=dict)

from datetime import datetime, timedelta, timezone

import pytest

from prompt_ab.analysis import VariantResult
from prompt_ab.prompts import PromptManager
from prompt_ab.session_store import InMemorySessionLedger


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def ledger(clock):
    return InMemorySessionLedger(clock=clock)


@pytest.fixture
def prompts(clock):
    return PromptManager(clock=clock)


def make_result(variant_id: str, cost: float = 0.001, latency_ms: float = 500.0, **kwargs):
    kwargs.setdefault("prompt_tokens", 40)
    kwargs.setdefault("completion_tokens", 60)
    return VariantResult(variant_id=variant_id, cost=cost, latency_ms=latency_ms, **kwargs)

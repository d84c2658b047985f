from __future__ import annotations

from collections.abc import Mapping
from datetime import timedelta
from typing import Any, Protocol

from prompt_ab.models import Session, SessionStats, SessionSummary


class SessionLedger(Protocol):
    """Shared contract for session usage ledgers."""

    def create_session(self, metadata: Mapping[str, Any] | None = None) -> Session:
        ...

    def get_session(self, session_id: str) -> Session | None:
        ...

    def update_session(self, session_id: str, updates: Mapping[str, Any]) -> Session:
        ...

    def add_usage(
        self,
        session_id: str,
        tokens: int,
        cost: float,
        trace_id: str | None = None,
    ) -> Session:
        ...

    def increment_turn(self, session_id: str) -> Session:
        ...

    def complete_session(self, session_id: str) -> Session:
        ...

    def abort_session(self, session_id: str) -> Session:
        ...

    def delete_session(self, session_id: str) -> bool:
        ...

    def list_sessions(self) -> list[Session]:
        ...

    def get_active_sessions(self) -> list[Session]:
        ...

    def get_stats(self) -> SessionStats:
        ...

    def cleanup_sessions(self, max_age: timedelta) -> int:
        ...

    def find_sessions(self, criteria: Mapping[str, Any]) -> list[Session]:
        ...

    def get_session_summary(self, session_id: str) -> SessionSummary | None:
        ...

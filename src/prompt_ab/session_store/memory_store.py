from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta
from typing import Any

from prompt_ab.errors import SessionNotFoundError
from prompt_ab.models import Session, SessionStats, SessionStatus, SessionSummary, utc_now
from . import record_ops

logger = logging.getLogger(__name__)


class InMemorySessionLedger:
    """Process-local session ledger keyed by session id.

    State is not shared across worker processes. Every read hands out a copy,
    so callers cannot mutate ledger state without going through this class.
    """

    def __init__(
        self,
        *,
        max_sessions: int = 0,
        strict_transitions: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._sessions: dict[str, Session] = {}
        self._max_sessions = max_sessions
        self._strict = strict_transitions
        self._clock = clock

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    @staticmethod
    def _snapshot(session: Session) -> Session:
        return session.model_copy(deep=True)

    def _evict_oldest(self) -> None:
        oldest = min(self._sessions.values(), key=lambda s: s.updated_at)
        del self._sessions[oldest.id]
        logger.info(
            "Evicted session %s (ledger limit %d reached)", oldest.id, self._max_sessions
        )

    def create_session(self, metadata: Mapping[str, Any] | None = None) -> Session:
        if self._max_sessions and len(self._sessions) >= self._max_sessions:
            self._evict_oldest()

        session = record_ops.default_record(uuid.uuid4().hex, metadata, self._clock())
        self._sessions[session.id] = session
        logger.info("Session created: %s", session.id)
        return self._snapshot(session)

    def get_session(self, session_id: str) -> Session | None:
        session = self._sessions.get(session_id)
        return self._snapshot(session) if session is not None else None

    def update_session(self, session_id: str, updates: Mapping[str, Any]) -> Session:
        session = self._require(session_id)
        record_ops.merge_updates(session, updates, now=self._clock(), strict=self._strict)
        return self._snapshot(session)

    def add_usage(
        self,
        session_id: str,
        tokens: int,
        cost: float,
        trace_id: str | None = None,
    ) -> Session:
        session = self._require(session_id)
        record_ops.apply_usage(session, tokens, cost, trace_id, now=self._clock())
        logger.debug("Session %s: +%d tokens (+$%.6f)", session_id, tokens, cost)
        return self._snapshot(session)

    def increment_turn(self, session_id: str) -> Session:
        session = self._require(session_id)
        session.turns += 1
        session.updated_at = self._clock()
        logger.debug("Session %s: turn %d", session_id, session.turns)
        return self._snapshot(session)

    def complete_session(self, session_id: str) -> Session:
        return self.update_session(session_id, {"status": SessionStatus.COMPLETED})

    def abort_session(self, session_id: str) -> Session:
        return self.update_session(session_id, {"status": SessionStatus.ABORTED})

    def delete_session(self, session_id: str) -> bool:
        deleted = self._sessions.pop(session_id, None) is not None
        if deleted:
            logger.info("Session deleted: %s", session_id)
        return deleted

    def list_sessions(self) -> list[Session]:
        return [self._snapshot(s) for s in self._sessions.values()]

    def get_active_sessions(self) -> list[Session]:
        return [
            self._snapshot(s)
            for s in self._sessions.values()
            if s.status == SessionStatus.ACTIVE
        ]

    def get_stats(self) -> SessionStats:
        return record_ops.build_stats(self._sessions.values())

    def cleanup_sessions(self, max_age: timedelta) -> int:
        now = self._clock()
        expired = [
            sid for sid, s in self._sessions.items() if now - s.updated_at > max_age
        ]
        for sid in expired:
            del self._sessions[sid]

        if expired:
            logger.info("Cleaned up %d old sessions", len(expired))
        return len(expired)

    def find_sessions(self, criteria: Mapping[str, Any]) -> list[Session]:
        return [
            self._snapshot(s)
            for s in self._sessions.values()
            if record_ops.matches_criteria(s, criteria)
        ]

    def get_session_summary(self, session_id: str) -> SessionSummary | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return record_ops.build_summary(session)

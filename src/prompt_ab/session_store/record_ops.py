from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from prompt_ab.errors import InvalidStatusTransitionError, InvalidUsageError
from prompt_ab.models import Session, SessionStats, SessionStatus, SessionSummary

logger = logging.getLogger(__name__)

DEFAULT_METADATA: dict[str, Any] = {
    "user_agent": "api-client",
    "source": "api",
}

ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.ACTIVE: frozenset({SessionStatus.COMPLETED, SessionStatus.ABORTED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.ABORTED: frozenset(),
}

UPDATABLE_FIELDS = frozenset({"metadata", "status"})


def default_record(
    session_id: str, metadata: Mapping[str, Any] | None, now: datetime
) -> Session:
    merged = dict(DEFAULT_METADATA)
    for key, value in (metadata or {}).items():
        # Falsy caller values fall back to the defaults, anything else wins.
        if key in DEFAULT_METADATA and not value:
            continue
        merged[key] = value
    return Session(
        id=session_id,
        created_at=now,
        updated_at=now,
        metadata=merged,
    )


def resolve_transition(
    session: Session, requested: SessionStatus | str, *, strict: bool
) -> SessionStatus:
    try:
        target = SessionStatus(requested)
    except ValueError:
        raise InvalidStatusTransitionError(
            session.id, session.status.value, str(requested)
        ) from None

    if target == session.status:
        return target
    if target in ALLOWED_TRANSITIONS[session.status]:
        return target
    if strict:
        raise InvalidStatusTransitionError(session.id, session.status.value, target.value)
    logger.warning(
        "Session %s moved from %s to %s outside the allowed transitions",
        session.id,
        session.status.value,
        target.value,
    )
    return target


def merge_updates(
    session: Session,
    updates: Mapping[str, Any],
    *,
    now: datetime,
    strict: bool,
) -> None:
    ignored = sorted(key for key in updates if key not in UPDATABLE_FIELDS)
    if ignored:
        logger.warning("Ignoring non-updatable session fields for %s: %s", session.id, ignored)

    if "status" in updates and updates["status"] is not None:
        session.status = resolve_transition(session, updates["status"], strict=strict)

    metadata = updates.get("metadata")
    if isinstance(metadata, Mapping):
        session.metadata = {**session.metadata, **metadata}

    session.updated_at = now


def apply_usage(
    session: Session,
    tokens: int,
    cost: float,
    trace_id: str | None,
    *,
    now: datetime,
) -> None:
    if isinstance(tokens, bool) or not math.isfinite(tokens) or int(tokens) != tokens:
        raise InvalidUsageError(
            f"Usage for session {session.id} must use whole tokens (tokens={tokens!r})"
        )
    if tokens < 0 or not math.isfinite(cost) or cost < 0:
        raise InvalidUsageError(
            f"Usage for session {session.id} must be non-negative and finite "
            f"(tokens={tokens}, cost={cost})"
        )
    session.total_tokens += int(tokens)
    session.total_cost += float(cost)
    session.updated_at = now
    if trace_id and trace_id not in session.traces:
        session.traces.append(trace_id)


def matches_criteria(session: Session, criteria: Mapping[str, Any]) -> bool:
    missing = object()
    return all(
        session.metadata.get(key, missing) == value for key, value in criteria.items()
    )


def build_stats(sessions: Iterable[Session]) -> SessionStats:
    sessions = list(sessions)
    count = len(sessions)
    total_tokens = sum(s.total_tokens for s in sessions)
    total_cost = sum(s.total_cost for s in sessions)
    by_status = {status: 0 for status in SessionStatus}
    for session in sessions:
        by_status[session.status] += 1

    return SessionStats(
        total_sessions=count,
        active_sessions=by_status[SessionStatus.ACTIVE],
        completed_sessions=by_status[SessionStatus.COMPLETED],
        aborted_sessions=by_status[SessionStatus.ABORTED],
        total_tokens=total_tokens,
        total_cost=total_cost,
        average_tokens_per_session=total_tokens / count if count else 0.0,
        average_cost_per_session=total_cost / count if count else 0.0,
    )


def build_summary(session: Session) -> SessionSummary:
    turns = session.turns
    return SessionSummary(
        id=session.id,
        status=session.status,
        duration_seconds=(session.updated_at - session.created_at).total_seconds(),
        turns=turns,
        total_tokens=session.total_tokens,
        total_cost=session.total_cost,
        avg_tokens_per_turn=session.total_tokens / turns if turns else 0.0,
        avg_cost_per_turn=session.total_cost / turns if turns else 0.0,
        trace_count=len(session.traces),
        metadata=dict(session.metadata),
    )

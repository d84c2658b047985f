from datetime import timedelta

import pytest

from prompt_ab.errors import (
    InvalidStatusTransitionError,
    InvalidUsageError,
    SessionNotFoundError,
)
from prompt_ab.models import SessionStatus
from prompt_ab.session_store import InMemorySessionLedger


def test_create_session_defaults(ledger, clock):
    session = ledger.create_session({"experiment": "greeting"})

    assert session.status == SessionStatus.ACTIVE
    assert session.turns == 0
    assert session.total_tokens == 0
    assert session.total_cost == 0
    assert session.traces == []
    assert session.created_at == clock.now
    assert session.updated_at == clock.now
    assert session.metadata == {
        "user_agent": "api-client",
        "source": "api",
        "experiment": "greeting",
    }


def test_create_session_keeps_caller_metadata_over_defaults(ledger):
    session = ledger.create_session({"user_agent": "dashboard", "source": ""})

    assert session.metadata["user_agent"] == "dashboard"
    assert session.metadata["source"] == "api"


def test_session_ids_are_unique(ledger):
    ids = {ledger.create_session().id for _ in range(20)}
    assert len(ids) == 20


def test_get_session_unknown_returns_none(ledger):
    assert ledger.get_session("missing") is None


def test_usage_and_turns_scenario(ledger):
    s1 = ledger.create_session()

    ledger.add_usage(s1.id, 100, 0.002)
    ledger.add_usage(s1.id, 50, 0.001)
    ledger.increment_turn(s1.id)
    ledger.increment_turn(s1.id)

    session = ledger.get_session(s1.id)
    assert session.total_tokens == 150
    assert session.total_cost == pytest.approx(0.003)
    assert session.turns == 2

    summary = ledger.get_session_summary(s1.id)
    assert summary.avg_tokens_per_turn == 75
    assert summary.avg_cost_per_turn == pytest.approx(0.0015)
    assert summary.trace_count == 0


def test_add_usage_deduplicates_traces_in_order(ledger):
    session = ledger.create_session()

    for trace_id in ["t1", "t2", "t1", None, "t3", "t2"]:
        ledger.add_usage(session.id, 10, 0.0001, trace_id)

    assert ledger.get_session(session.id).traces == ["t1", "t2", "t3"]


def test_add_usage_rejects_negative_values(ledger):
    session = ledger.create_session()

    with pytest.raises(InvalidUsageError):
        ledger.add_usage(session.id, -1, 0.0)
    with pytest.raises(InvalidUsageError):
        ledger.add_usage(session.id, 1, -0.5)

    assert ledger.get_session(session.id).total_tokens == 0


@pytest.mark.parametrize("cost", [float("nan"), float("inf"), float("-inf")])
def test_add_usage_rejects_non_finite_cost(ledger, cost):
    session = ledger.create_session()
    ledger.add_usage(session.id, 10, 0.002)

    with pytest.raises(InvalidUsageError):
        ledger.add_usage(session.id, 10, cost)

    stored = ledger.get_session(session.id)
    assert stored.total_tokens == 10
    assert stored.total_cost == pytest.approx(0.002)
    assert ledger.get_stats().total_cost == pytest.approx(0.002)


@pytest.mark.parametrize("tokens", [1.7, float("nan"), True])
def test_add_usage_rejects_fractional_tokens(ledger, tokens):
    session = ledger.create_session()

    with pytest.raises(InvalidUsageError):
        ledger.add_usage(session.id, tokens, 0.001)

    assert ledger.get_session(session.id).total_tokens == 0


def test_add_usage_accepts_integral_floats(ledger):
    session = ledger.create_session()

    updated = ledger.add_usage(session.id, 2.0, 0.001)

    assert updated.total_tokens == 2
    assert isinstance(updated.total_tokens, int)


@pytest.mark.parametrize(
    "operation",
    [
        lambda ledger, sid: ledger.add_usage(sid, 1, 0.1),
        lambda ledger, sid: ledger.increment_turn(sid),
        lambda ledger, sid: ledger.update_session(sid, {"metadata": {"a": 1}}),
        lambda ledger, sid: ledger.complete_session(sid),
        lambda ledger, sid: ledger.abort_session(sid),
    ],
)
def test_mutations_on_unknown_session_raise(ledger, operation):
    with pytest.raises(SessionNotFoundError):
        operation(ledger, "never-created")
    assert len(ledger) == 0


def test_mutations_after_delete_raise(ledger):
    session = ledger.create_session()
    assert ledger.delete_session(session.id) is True
    assert ledger.delete_session(session.id) is False

    with pytest.raises(SessionNotFoundError):
        ledger.add_usage(session.id, 1, 0.1)


def test_not_found_error_is_key_error(ledger):
    with pytest.raises(KeyError):
        ledger.increment_turn("nope")


def test_mutations_refresh_updated_at(ledger, clock):
    session = ledger.create_session()
    created_at = session.created_at

    clock.advance(seconds=5)
    updated = ledger.add_usage(session.id, 1, 0.0)
    assert updated.updated_at == clock.now

    clock.advance(seconds=5)
    updated = ledger.increment_turn(session.id)
    assert updated.updated_at == clock.now

    clock.advance(seconds=5)
    updated = ledger.update_session(session.id, {"metadata": {"k": "v"}})
    assert updated.updated_at == clock.now
    assert updated.created_at == created_at


def test_update_session_ignores_protected_fields(ledger, clock):
    session = ledger.create_session()
    ledger.add_usage(session.id, 10, 0.01)

    updated = ledger.update_session(
        session.id,
        {
            "id": "hijacked",
            "created_at": clock.now - timedelta(days=3),
            "total_tokens": 0,
            "total_cost": 0.0,
            "metadata": {"variant": "b"},
        },
    )

    assert updated.id == session.id
    assert updated.created_at == session.created_at
    assert updated.total_tokens == 10
    assert updated.total_cost == pytest.approx(0.01)
    assert updated.metadata["variant"] == "b"
    assert updated.metadata["source"] == "api"


def test_returned_sessions_are_snapshots(ledger):
    session = ledger.create_session()
    session.total_tokens = 999
    session.traces.append("forged")

    stored = ledger.get_session(session.id)
    assert stored.total_tokens == 0
    assert stored.traces == []


def test_complete_and_abort_transitions(ledger):
    done = ledger.create_session()
    gone = ledger.create_session()

    assert ledger.complete_session(done.id).status == SessionStatus.COMPLETED
    assert ledger.abort_session(gone.id).status == SessionStatus.ABORTED


def test_terminal_status_cannot_be_left(ledger):
    session = ledger.create_session()
    ledger.abort_session(session.id)

    with pytest.raises(InvalidStatusTransitionError):
        ledger.complete_session(session.id)
    with pytest.raises(InvalidStatusTransitionError):
        ledger.update_session(session.id, {"status": "active"})

    assert ledger.get_session(session.id).status == SessionStatus.ABORTED


def test_same_status_update_is_a_no_op(ledger):
    session = ledger.create_session()
    ledger.complete_session(session.id)

    updated = ledger.update_session(session.id, {"status": "completed"})
    assert updated.status == SessionStatus.COMPLETED


def test_unknown_status_value_is_rejected(ledger):
    session = ledger.create_session()

    with pytest.raises(InvalidStatusTransitionError):
        ledger.update_session(session.id, {"status": "paused"})


def test_permissive_mode_allows_any_transition(clock):
    ledger = InMemorySessionLedger(strict_transitions=False, clock=clock)
    session = ledger.create_session()
    ledger.abort_session(session.id)

    reopened = ledger.update_session(session.id, {"status": "active"})
    assert reopened.status == SessionStatus.ACTIVE


def test_list_and_active_sessions(ledger):
    first = ledger.create_session()
    second = ledger.create_session()
    third = ledger.create_session()
    ledger.complete_session(second.id)

    assert [s.id for s in ledger.list_sessions()] == [first.id, second.id, third.id]
    assert [s.id for s in ledger.get_active_sessions()] == [first.id, third.id]


def test_stats_on_empty_ledger(ledger):
    stats = ledger.get_stats()

    assert stats.total_sessions == 0
    assert stats.active_sessions == 0
    assert stats.average_tokens_per_session == 0
    assert stats.average_cost_per_session == 0


def test_stats_aggregate_all_sessions(ledger):
    a = ledger.create_session()
    b = ledger.create_session()
    ledger.add_usage(a.id, 100, 0.004)
    ledger.add_usage(b.id, 300, 0.002)
    ledger.abort_session(b.id)

    stats = ledger.get_stats()
    assert stats.total_sessions == 2
    assert stats.active_sessions == 1
    assert stats.aborted_sessions == 1
    assert stats.completed_sessions == 0
    assert stats.total_tokens == 400
    assert stats.total_cost == pytest.approx(0.006)
    assert stats.average_tokens_per_session == 200
    assert stats.average_cost_per_session == pytest.approx(0.003)


def test_cleanup_removes_only_sessions_older_than_max_age(ledger, clock):
    stale = ledger.create_session()
    clock.advance(minutes=30)
    boundary = ledger.create_session()
    clock.advance(minutes=30)
    fresh = ledger.create_session()

    # stale is 60 minutes old, boundary exactly 30, fresh 0.
    removed = ledger.cleanup_sessions(timedelta(minutes=30))

    assert removed == 1
    assert ledger.get_session(stale.id) is None
    assert ledger.get_session(boundary.id) is not None
    assert ledger.get_session(fresh.id) is not None


def test_cleanup_measures_age_from_last_update(ledger, clock):
    session = ledger.create_session()
    clock.advance(hours=2)
    ledger.increment_turn(session.id)
    clock.advance(minutes=10)

    assert ledger.cleanup_sessions(timedelta(hours=1)) == 0
    assert session.id in ledger


def test_find_sessions_matches_all_criteria_exactly(ledger):
    a = ledger.create_session({"test_id": "t1", "variant": "a"})
    ledger.create_session({"test_id": "t1", "variant": "b"})
    ledger.create_session({"test_id": "t2", "variant": "a"})

    found = ledger.find_sessions({"test_id": "t1", "variant": "a"})
    assert [s.id for s in found] == [a.id]
    assert ledger.find_sessions({"test_id": "t"}) == []
    assert ledger.find_sessions({"missing": None}) == []
    assert len(ledger.find_sessions({})) == 3


def test_summary_for_unknown_session_is_none(ledger):
    assert ledger.get_session_summary("missing") is None


def test_summary_duration_and_zero_turns(ledger, clock):
    session = ledger.create_session({"source": "dashboard"})
    clock.advance(seconds=90)
    ledger.add_usage(session.id, 20, 0.0002, "trace-1")

    summary = ledger.get_session_summary(session.id)
    assert summary.duration_seconds == 90
    assert summary.avg_tokens_per_turn == 0
    assert summary.avg_cost_per_turn == 0
    assert summary.trace_count == 1
    assert summary.metadata["source"] == "dashboard"


def test_max_sessions_evicts_least_recently_updated(clock):
    ledger = InMemorySessionLedger(max_sessions=2, clock=clock)
    first = ledger.create_session()
    clock.advance(seconds=1)
    second = ledger.create_session()
    clock.advance(seconds=1)
    ledger.increment_turn(first.id)
    clock.advance(seconds=1)

    third = ledger.create_session()

    assert len(ledger) == 2
    assert second.id not in ledger
    assert first.id in ledger
    assert third.id in ledger

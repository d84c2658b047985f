"""In-memory session usage ledger and its maintenance helpers."""

from prompt_ab.config import get_ledger_config
from prompt_ab.session_store.interface import SessionLedger
from prompt_ab.session_store.memory_store import InMemorySessionLedger
from prompt_ab.session_store.sweeper import SessionSweeper


def build_session_ledger() -> InMemorySessionLedger:
    config = get_ledger_config()
    return InMemorySessionLedger(
        max_sessions=config.max_sessions,
        strict_transitions=config.strict_transitions,
    )


__all__ = [
    "SessionLedger",
    "InMemorySessionLedger",
    "SessionSweeper",
    "build_session_ledger",
]

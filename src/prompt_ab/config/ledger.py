from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from prompt_ab.config.settings import Settings, get_settings


@dataclass(frozen=True)
class LedgerConfig:
    """Resolved session ledger configuration from environment settings."""

    max_age: timedelta
    cleanup_interval_seconds: float
    max_sessions: int
    strict_transitions: bool

    @property
    def sweeper_enabled(self) -> bool:
        return self.cleanup_interval_seconds > 0


def ledger_config_from(settings: Settings) -> LedgerConfig:
    return LedgerConfig(
        max_age=timedelta(seconds=settings.session_max_age_seconds),
        cleanup_interval_seconds=settings.session_cleanup_interval_seconds,
        max_sessions=max(0, settings.session_max_sessions),
        strict_transitions=settings.session_strict_transitions,
    )


def get_ledger_config() -> LedgerConfig:
    return ledger_config_from(get_settings())

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta

from prompt_ab.config import LedgerConfig
from prompt_ab.session_store.interface import SessionLedger

logger = logging.getLogger(__name__)


class SessionSweeper:
    """Evicts stale sessions from a ledger on a fixed interval."""

    def __init__(
        self,
        ledger: SessionLedger,
        *,
        interval_seconds: float,
        max_age: timedelta,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._ledger = ledger
        self._interval = interval_seconds
        self._max_age = max_age

    @classmethod
    def from_config(cls, ledger: SessionLedger, config: LedgerConfig) -> SessionSweeper:
        return cls(
            ledger,
            interval_seconds=config.cleanup_interval_seconds,
            max_age=config.max_age,
        )

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def max_age(self) -> timedelta:
        return self._max_age

    def sweep_once(self) -> int:
        return self._ledger.cleanup_sessions(self._max_age)

    async def run(self) -> None:
        logger.info(
            "Session sweeper started (interval=%ss, max_age=%s)",
            self._interval,
            self._max_age,
        )
        try:
            while True:
                await asyncio.sleep(self._interval)
                self.sweep_once()
        except asyncio.CancelledError:
            logger.info("Session sweeper stopped")
            raise

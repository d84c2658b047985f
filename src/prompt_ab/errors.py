from __future__ import annotations


class PromptABError(Exception):
    """Base class for errors raised by the ledger and the analysis layer."""


class SessionNotFoundError(PromptABError, KeyError):
    def __init__(self, session_id: str) -> None:
        super().__init__(session_id)
        self.session_id = session_id

    def __str__(self) -> str:
        return f"Session not found: {self.session_id}"


class InvalidStatusTransitionError(PromptABError, ValueError):
    def __init__(self, session_id: str, current: str, requested: str) -> None:
        super().__init__(session_id, current, requested)
        self.session_id = session_id
        self.current = current
        self.requested = requested

    def __str__(self) -> str:
        return (
            f"Session {self.session_id} cannot move from "
            f"{self.current!r} to {self.requested!r}"
        )


class InvalidUsageError(PromptABError, ValueError):
    """Usage attribution with negative, fractional or non-finite values."""


class UnknownMetricError(PromptABError, ValueError):
    """Primary metric name outside the supported set (strict mode only)."""


class RecordNotFoundError(PromptABError, KeyError):
    """Lookup of a prompt variant, test input or A/B test that does not exist."""

    kind = "Record"

    def __init__(self, record_id: str) -> None:
        super().__init__(record_id)
        self.record_id = record_id

    def __str__(self) -> str:
        return f"{self.kind} not found: {self.record_id}"


class VariantNotFoundError(RecordNotFoundError):
    kind = "Prompt variant"


class InputNotFoundError(RecordNotFoundError):
    kind = "Test input"


class ABTestNotFoundError(RecordNotFoundError):
    kind = "A/B test"


class InvalidABTestError(PromptABError, ValueError):
    """A/B test definition or result that fails validation."""


class ABTestStateError(PromptABError, ValueError):
    """Operation not allowed in the A/B test's current status."""

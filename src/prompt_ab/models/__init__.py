from prompt_ab.models.session_record import (
    Session,
    SessionStats,
    SessionStatus,
    SessionSummary,
    utc_now,
)

__all__ = ["Session", "SessionStats", "SessionStatus", "SessionSummary", "utc_now"]

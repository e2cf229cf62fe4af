"""Session lifecycle derived from the trusted server clock."""
from datetime import datetime
from enum import Enum


class SessionState(Enum):
    """Temporal state of a session."""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


class SessionLifecycleEvaluator:
    """Pure function of (start, end, now). The window is [start, end)."""

    @staticmethod
    def evaluate(session, now: datetime) -> SessionState:
        if now < session.start_time:
            return SessionState.PENDING
        if now >= session.end_time:
            return SessionState.EXPIRED
        return SessionState.ACTIVE

    @classmethod
    def is_active(cls, session, now: datetime) -> bool:
        return cls.evaluate(session, now) is SessionState.ACTIVE

    @classmethod
    def refresh_active_flag(cls, session, now: datetime) -> bool:
        """Recompute the cached is_active hint. Returns True if it changed.

        Called explicitly at every session write boundary, before commit.
        """
        live = cls.is_active(session, now)
        changed = bool(session.is_active) != live
        session.is_active = live
        return changed

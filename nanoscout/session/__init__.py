"""Session management module."""

from nanoscout.session.manager import SessionManager
from nanoscout.session.store import SessionStore
from nanoscout.session.types import RestoredSession, Session, SessionMessage, SessionSummary

__all__ = [
    "RestoredSession",
    "Session",
    "SessionManager",
    "SessionMessage",
    "SessionStore",
    "SessionSummary",
]

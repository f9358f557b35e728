"""Session data types."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

from nanoscout.connectors.base import ConnectorMessage, FileReference, MessageContext


@dataclass
class SessionMessage:
    """One inbound message, consumed once by the session handler."""
    id: str
    message: ConnectorMessage
    context: MessageContext
    received_at: datetime = field(default_factory=datetime.now)


@dataclass
class Session:
    """
    A conversation session.

    ``id`` is the logical conversation id; ``storage_id`` names its log file
    and may differ so logs can rotate without renaming the conversation.
    ``state`` belongs to the engine and is only touched by the session's
    single in-flight handler.
    """
    id: str
    storage_id: str
    state: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)
    pending: int = 0

    def touch(self, when: datetime | None = None) -> None:
        self.updated_at = when or datetime.now()


@dataclass
class RestoredSession:
    """A session folded back together from its log."""
    session_id: str
    storage_id: str
    source: str
    context: MessageContext
    state: dict[str, Any]
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_entry_type: Literal["incoming", "outgoing"] | None = None


@dataclass
class SessionSummary:
    session_id: str
    storage_id: str
    source: str
    context: MessageContext
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_message: str | None = None
    last_files: list[FileReference] = field(default_factory=list)

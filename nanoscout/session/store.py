"""Append-only session log, one JSONL file per conversation."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

from nanoscout.connectors.base import FileReference, MessageContext
from nanoscout.session.types import RestoredSession, Session, SessionMessage, SessionSummary
from nanoscout.utils.helpers import ensure_dir
from nanoscout.utils.ids import new_id


class _Record(BaseModel):
    """Log records use camelCase keys and ignore fields they don't know."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ContextRecord(_Record):
    channel_id: str
    user_id: str | None = None
    session_id: str | None = None

    @classmethod
    def from_context(cls, context: MessageContext) -> "ContextRecord":
        return cls(channel_id=context.channel_id, user_id=context.user_id, session_id=context.session_id)

    def to_context(self) -> MessageContext:
        return MessageContext(channel_id=self.channel_id, user_id=self.user_id, session_id=self.session_id)


class FileRecord(_Record):
    id: str
    name: str
    mime_type: str
    size: int
    path: str

    @classmethod
    def from_reference(cls, ref: FileReference) -> "FileRecord":
        return cls(id=ref.id, name=ref.name, mime_type=ref.mime_type, size=ref.size, path=ref.path)

    def to_reference(self) -> FileReference:
        return FileReference(id=self.id, name=self.name, mime_type=self.mime_type, size=self.size, path=self.path)


class SessionCreatedEntry(_Record):
    type: Literal["session_created"] = "session_created"
    session_id: str
    storage_id: str
    source: str
    context: ContextRecord
    created_at: datetime


class IncomingEntry(_Record):
    type: Literal["incoming"] = "incoming"
    session_id: str
    storage_id: str
    source: str
    message_id: str
    context: ContextRecord
    text: str | None = None
    files: list[FileRecord] = Field(default_factory=list)
    received_at: datetime


class OutgoingEntry(_Record):
    type: Literal["outgoing"] = "outgoing"
    session_id: str
    storage_id: str
    source: str
    message_id: str
    context: ContextRecord
    text: str | None = None
    files: list[FileRecord] = Field(default_factory=list)
    sent_at: datetime


class StateEntry(_Record):
    type: Literal["state"] = "state"
    session_id: str
    storage_id: str
    updated_at: datetime
    state: dict[str, Any] | None = None


SessionLogEntry = Annotated[
    Union[SessionCreatedEntry, IncomingEntry, OutgoingEntry, StateEntry],
    Field(discriminator="type"),
]
_entry_adapter: TypeAdapter[SessionLogEntry] = TypeAdapter(SessionLogEntry)


def parse_entry(line: str) -> SessionLogEntry | None:
    """Parse one log line; returns None for blank, malformed or unknown records."""
    line = line.strip()
    if not line:
        return None
    try:
        return _entry_adapter.validate_json(line)
    except ValidationError:
        return None


class SessionStore:
    """
    Durable session log.

    Every conversation gets ``<storage_id>.jsonl`` under ``base_path``;
    records are only ever appended. Replaying a file in order rebuilds the
    latest state and tells whether the last message was left unanswered.
    """

    def __init__(self, base_path: Path):
        self.base_path = Path(base_path)

    def create_storage_id(self) -> str:
        return new_id()

    def _path(self, storage_id: str) -> Path:
        return self.base_path / f"{storage_id}.jsonl"

    async def record_session_created(self, session: Session, source: str, context: MessageContext) -> None:
        await self._append(SessionCreatedEntry(
            session_id=session.id,
            storage_id=session.storage_id,
            source=source,
            context=ContextRecord.from_context(context),
            created_at=session.created_at,
        ))

    async def record_incoming(self, session: Session, entry: SessionMessage, source: str) -> None:
        await self._append(IncomingEntry(
            session_id=session.id,
            storage_id=session.storage_id,
            source=source,
            message_id=entry.id,
            context=ContextRecord.from_context(entry.context),
            text=entry.message.text,
            files=[FileRecord.from_reference(f) for f in entry.message.files],
            received_at=entry.received_at,
        ))

    async def record_outgoing(
        self,
        session: Session,
        message_id: str,
        source: str,
        context: MessageContext,
        text: str | None,
        files: list[FileReference] | None = None,
    ) -> None:
        await self._append(OutgoingEntry(
            session_id=session.id,
            storage_id=session.storage_id,
            source=source,
            message_id=message_id,
            context=ContextRecord.from_context(context),
            text=text,
            files=[FileRecord.from_reference(f) for f in files or []],
            sent_at=datetime.now(),
        ))

    async def record_state(self, session: Session) -> None:
        await self._append(StateEntry(
            session_id=session.id,
            storage_id=session.storage_id,
            updated_at=session.updated_at,
            state=session.state,
        ))

    async def _append(self, entry: _Record) -> None:
        line = entry.model_dump_json(by_alias=True) + "\n"
        path = self._path(entry.storage_id)
        await asyncio.to_thread(self._write_line, path, line)

    def _write_line(self, path: Path, line: str) -> None:
        ensure_dir(self.base_path)
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)

    def read_session_entries(self, storage_id: str) -> list[SessionLogEntry]:
        path = self._path(storage_id)
        if not path.exists():
            return []
        with open(path, encoding="utf-8") as f:
            return [entry for entry in map(parse_entry, f) if entry is not None]

    def load_sessions(self) -> list[RestoredSession]:
        if not self.base_path.exists():
            return []

        restored = []
        for path in sorted(self.base_path.glob("*.jsonl")):
            try:
                session = self._replay(path.stem, self.read_session_entries(path.stem))
            except OSError as e:
                logger.warning(f"Failed to read session log {path}: {e}")
                continue
            if session is not None:
                restored.append(session)
        return restored

    @staticmethod
    def _replay(storage_id: str, entries: list[SessionLogEntry]) -> RestoredSession | None:
        session_id = source = None
        context: ContextRecord | None = None
        state: dict[str, Any] | None = None
        created_at = updated_at = None
        last_entry_type = None

        for entry in entries:
            session_id = entry.session_id
            if isinstance(entry, SessionCreatedEntry):
                source, context = entry.source, entry.context
                created_at = entry.created_at
            elif isinstance(entry, IncomingEntry):
                source, context = entry.source, entry.context
                last_entry_type = "incoming"
                updated_at = entry.received_at
            elif isinstance(entry, OutgoingEntry):
                source, context = entry.source, entry.context
                last_entry_type = "outgoing"
                updated_at = entry.sent_at
            elif isinstance(entry, StateEntry):
                state = entry.state
                updated_at = entry.updated_at

        if not session_id or not source or context is None:
            return None

        return RestoredSession(
            session_id=session_id,
            storage_id=storage_id,
            source=source,
            context=context.to_context(),
            state=state or {},
            created_at=created_at,
            updated_at=updated_at,
            last_entry_type=last_entry_type,
        )

    def list_sessions(self) -> list[SessionSummary]:
        summaries = []
        for restored in self.load_sessions():
            messages = [
                entry for entry in self.read_session_entries(restored.storage_id)
                if isinstance(entry, (IncomingEntry, OutgoingEntry))
            ]
            last = messages[-1] if messages else None
            summaries.append(SessionSummary(
                session_id=restored.session_id,
                storage_id=restored.storage_id,
                source=restored.source,
                context=restored.context,
                created_at=restored.created_at,
                updated_at=restored.updated_at,
                last_message=last.text if last else None,
                last_files=[f.to_reference() for f in last.files] if last else [],
            ))
        return sorted(summaries, key=lambda s: s.updated_at or datetime.min, reverse=True)

"""Keyword memory across sessions, kept as one JSONL file."""

import asyncio
from datetime import datetime
from pathlib import Path
from typing import Literal

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from nanoscout.connectors.base import FileReference
from nanoscout.session.store import FileRecord
from nanoscout.utils.helpers import ensure_dir
from nanoscout.utils.ids import new_id

MemoryRole = Literal["user", "assistant", "tool", "system"]


class MemoryEntry(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(default_factory=new_id)
    session_id: str
    source: str
    role: MemoryRole
    text: str | None = None
    files: list[FileRecord] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=datetime.now)


class MemoryStore:
    """
    Append-only memory of what was said, searchable by keyword.

    Entries go to ``<base_path>/memory.jsonl``. When ``max_entries`` is set the
    file is cut back to the newest entries after each write.
    """

    def __init__(self, base_path: Path, max_entries: int | None = None):
        self.base_path = base_path
        self.path = base_path / "memory.jsonl"
        self.max_entries = max_entries
        self._write_lock = asyncio.Lock()

    async def record(
        self,
        session_id: str,
        source: str,
        role: MemoryRole,
        text: str | None,
        files: list[FileReference] | None = None,
    ) -> MemoryEntry:
        entry = MemoryEntry(
            session_id=session_id,
            source=source,
            role=role,
            text=text,
            files=[FileRecord.from_reference(f) for f in files or []],
        )
        line = entry.model_dump_json(by_alias=True)
        async with self._write_lock:
            await asyncio.to_thread(self._append, line)
        return entry

    async def query(self, text: str, limit: int = 20) -> list[MemoryEntry]:
        """
        Return the newest entries whose text contains ``text``, oldest first.

        Matching is case-insensitive. An empty needle returns the newest
        ``limit`` entries.
        """
        entries = await asyncio.to_thread(self.read_entries)
        needle = text.strip().lower()
        if needle:
            entries = [e for e in entries if e.text and needle in e.text.lower()]
        return entries[-limit:] if limit > 0 else []

    def read_entries(self) -> list[MemoryEntry]:
        if not self.path.exists():
            return []
        entries: list[MemoryEntry] = []
        for line in self.path.read_text(encoding="utf-8").splitlines():
            if not line.strip():
                continue
            try:
                entries.append(MemoryEntry.model_validate_json(line))
            except ValidationError:
                logger.debug(f"Skipping malformed memory line in {self.path}")
        return entries

    def _append(self, line: str) -> None:
        ensure_dir(self.base_path)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(line + "\n")
        if self.max_entries is not None:
            self._prune(self.max_entries)

    def _prune(self, keep: int) -> None:
        lines = [l for l in self.path.read_text(encoding="utf-8").splitlines() if l.strip()]
        if len(lines) <= keep:
            return
        self.path.write_text("\n".join(lines[-keep:]) + "\n", encoding="utf-8")

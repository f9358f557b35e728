"""Local attachment store shared by connectors and tools."""

import asyncio
import mimetypes
import shutil
from datetime import datetime
from pathlib import Path

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nanoscout.connectors.base import FileReference
from nanoscout.utils.helpers import ensure_dir, safe_filename
from nanoscout.utils.ids import new_id


class StoredFile(BaseModel):
    """Metadata sidecar written next to every stored file."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    mime_type: str
    size: int
    path: str
    source: str
    created_at: datetime = Field(default_factory=datetime.now)

    def to_reference(self) -> FileReference:
        return FileReference(
            id=self.id,
            name=self.name,
            mime_type=self.mime_type,
            size=self.size,
            path=self.path,
        )


class FileStore:
    """
    Flat directory of files addressed by generated id.

    Each file is written as ``<id>__<sanitized name>`` with a ``<id>.json``
    metadata record beside it.
    """

    def __init__(self, base_path: Path):
        self.base_path = ensure_dir(base_path)

    def _paths(self, file_id: str, name: str) -> tuple[Path, Path]:
        stored = self.base_path / f"{file_id}__{safe_filename(name)}"
        meta = self.base_path / f"{file_id}.json"
        return stored, meta

    @staticmethod
    def _guess_mime(name: str, mime_type: str | None) -> str:
        if mime_type:
            return mime_type
        guessed, _ = mimetypes.guess_type(name)
        return guessed or "application/octet-stream"

    def _write_meta(self, record: StoredFile, meta_path: Path) -> None:
        meta_path.write_text(record.model_dump_json(by_alias=True, indent=2), encoding="utf-8")

    async def save_bytes(
        self,
        data: bytes,
        name: str,
        mime_type: str | None = None,
        source: str = "unknown",
    ) -> StoredFile:
        """Persist raw bytes and return the stored record."""
        file_id = new_id()
        stored, meta = self._paths(file_id, name)
        await asyncio.to_thread(stored.write_bytes, data)
        record = StoredFile(
            id=file_id,
            name=name,
            mime_type=self._guess_mime(name, mime_type),
            size=len(data),
            path=str(stored),
            source=source,
        )
        await asyncio.to_thread(self._write_meta, record, meta)
        logger.debug(f"Stored file {name} as {file_id} ({record.size} bytes)")
        return record

    async def save_from_path(
        self,
        source_path: Path,
        name: str | None = None,
        mime_type: str | None = None,
        source: str = "unknown",
    ) -> StoredFile:
        """Copy an existing file into the store."""
        name = name or source_path.name
        file_id = new_id()
        stored, meta = self._paths(file_id, name)
        await asyncio.to_thread(shutil.copyfile, source_path, stored)
        record = StoredFile(
            id=file_id,
            name=name,
            mime_type=self._guess_mime(name, mime_type),
            size=stored.stat().st_size,
            path=str(stored),
            source=source,
        )
        await asyncio.to_thread(self._write_meta, record, meta)
        return record

    def get(self, file_id: str) -> StoredFile | None:
        meta = self.base_path / f"{file_id}.json"
        if not meta.exists():
            return None
        try:
            return StoredFile.model_validate_json(meta.read_text(encoding="utf-8"))
        except ValueError as e:
            logger.warning(f"Unreadable metadata for file {file_id}: {e}")
            return None

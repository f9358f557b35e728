"""Attachment storage."""

from nanoscout.files.store import FileStore, StoredFile

__all__ = ["FileStore", "StoredFile"]

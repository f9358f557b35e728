"""Cross-session keyword memory."""

from nanoscout.memory.store import MemoryEntry, MemoryStore

__all__ = ["MemoryEntry", "MemoryStore"]

"""Utility functions for nanoscout."""

from nanoscout.utils.helpers import ensure_dir, safe_filename
from nanoscout.utils.ids import new_id, session_key

__all__ = [
    "ensure_dir",
    "safe_filename",
    "new_id",
    "session_key",
]

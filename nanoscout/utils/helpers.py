"""Filesystem helpers shared across nanoscout modules."""

import re
from pathlib import Path

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def ensure_dir(path: Path) -> Path:
    """Create a directory (and parents) if missing and return it."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_filename(name: str, fallback: str = "file") -> str:
    """Reduce a user-supplied name to something safe for the local filesystem."""
    base = Path(name).name.strip()
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned[:120] or fallback

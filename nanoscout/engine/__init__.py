"""Engine composition root."""

from nanoscout.engine.runtime import Engine

__all__ = ["Engine"]

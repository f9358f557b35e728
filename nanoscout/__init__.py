"""nanoscout - a personal agent runtime."""

__version__ = "0.1.0"
__logo__ = "🔭"

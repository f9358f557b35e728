"""Plugins shipped with nanoscout."""

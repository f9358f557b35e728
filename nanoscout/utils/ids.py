"""Helpers for generating and normalizing identifiers."""

from __future__ import annotations

import uuid


def new_id() -> str:
    """Generate a new opaque identifier."""
    return uuid.uuid4().hex


def session_key(source: str, conversation_id: str) -> str:
    """Compute the in-memory key for a conversation.

    A conversation is identified by the connector it came from plus either the
    pre-assigned session id or the channel id, so the same chat id on two
    different connectors never shares state.
    """
    return f"{source}:{conversation_id}"

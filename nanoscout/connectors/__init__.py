"""Chat connectors and the registry that owns them."""

from nanoscout.connectors.base import (
    Connector,
    ConnectorMessage,
    FileReference,
    MessageContext,
)
from nanoscout.connectors.registry import ConnectorActionResult, ConnectorRegistry

__all__ = [
    "Connector",
    "ConnectorActionResult",
    "ConnectorMessage",
    "ConnectorRegistry",
    "FileReference",
    "MessageContext",
]

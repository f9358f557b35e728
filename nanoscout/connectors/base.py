"""Base connector interface for chat platforms."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable


@dataclass(frozen=True)
class FileReference:
    """A file held in the local file store."""
    id: str
    name: str
    mime_type: str
    size: int
    path: str


@dataclass
class ConnectorMessage:
    """Text and/or attachments travelling in or out of a connector."""
    text: str | None = None
    files: list[FileReference] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.text and self.text.strip()) and not self.files


@dataclass
class MessageContext:
    """Where a message came from and which conversation it belongs to."""
    channel_id: str
    user_id: str | None = None
    session_id: str | None = None


MessageHandler = Callable[[ConnectorMessage, MessageContext], Awaitable[None] | None]
Unsubscribe = Callable[[], None]


class Connector(ABC):
    """
    Abstract base class for chat connectors.

    A connector delivers inbound messages to whatever handler subscribed
    through ``on_message`` and sends outbound messages on request. Connectors
    are registered by plugins and owned by the ``ConnectorRegistry``.
    """

    @abstractmethod
    def on_message(self, handler: MessageHandler) -> Unsubscribe:
        """Subscribe to inbound messages. Returns an unsubscribe callable."""

    @abstractmethod
    async def send_message(self, target_id: str, message: ConnectorMessage) -> None:
        """
        Send a message through this connector.

        Args:
            target_id: Platform-specific chat/channel id.
            message: Text and files to deliver.
        """

    async def shutdown(self, reason: str | None = None) -> None:
        """Stop background work. Called once by the registry on unregister."""

    def start_typing(self, target_id: str) -> Callable[[], None] | None:
        """Show a typing indicator until the returned callable is invoked."""
        return None

"""Connector registry: owns active connectors and routes their traffic."""

import inspect
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Literal

from loguru import logger

from nanoscout.connectors.base import Connector, ConnectorMessage, MessageContext, Unsubscribe

ConnectorStatus = Literal["loaded", "already-loaded", "unloaded", "not-loaded"]

InboundCallback = Callable[[str, ConnectorMessage, MessageContext], Awaitable[None] | None]
FatalCallback = Callable[[str, str, Exception | None], Awaitable[None] | None]


@dataclass(frozen=True)
class ConnectorActionResult:
    ok: bool
    status: ConnectorStatus


@dataclass
class _ManagedConnector:
    connector: Connector
    unsubscribe: Unsubscribe
    loaded_at: datetime


class ConnectorRegistry:
    """
    Holds active connectors keyed by id.

    Every registered connector gets exactly one subscription that forwards
    ``(connector_id, message, context)`` to ``on_message``.
    """

    def __init__(
        self,
        on_message: InboundCallback,
        on_fatal: FatalCallback | None = None,
    ):
        self._on_message = on_message
        self._on_fatal = on_fatal
        self._connectors: dict[str, _ManagedConnector] = {}

    def list_status(self) -> list[dict[str, Any]]:
        return [
            {"id": connector_id, "loaded_at": managed.loaded_at.isoformat()}
            for connector_id, managed in self._connectors.items()
        ]

    def has(self, connector_id: str) -> bool:
        return connector_id in self._connectors

    def get(self, connector_id: str) -> Connector | None:
        managed = self._connectors.get(connector_id)
        return managed.connector if managed else None

    def register(self, connector_id: str, connector: Connector) -> ConnectorActionResult:
        if connector_id in self._connectors:
            logger.warning(f"Connector already loaded: {connector_id}")
            return ConnectorActionResult(ok=True, status="already-loaded")

        async def forward(message: ConnectorMessage, context: MessageContext) -> None:
            result = self._on_message(connector_id, message, context)
            if inspect.isawaitable(result):
                await result

        unsubscribe = connector.on_message(forward)
        self._connectors[connector_id] = _ManagedConnector(
            connector=connector,
            unsubscribe=unsubscribe,
            loaded_at=datetime.now(),
        )
        logger.info(f"Connector registered: {connector_id}")
        return ConnectorActionResult(ok=True, status="loaded")

    async def unregister(self, connector_id: str, reason: str = "unload") -> ConnectorActionResult:
        managed = self._connectors.get(connector_id)
        if managed is None:
            return ConnectorActionResult(ok=True, status="not-loaded")

        managed.unsubscribe()
        try:
            await managed.connector.shutdown(reason)
        except Exception as e:
            logger.warning(f"Connector {connector_id} shutdown failed: {e}")
        self._connectors.pop(connector_id, None)
        logger.info(f"Connector unregistered: {connector_id} ({reason})")
        return ConnectorActionResult(ok=True, status="unloaded")

    async def unregister_all(self, reason: str = "shutdown") -> None:
        """Shut connectors down one at a time in registration order."""
        for connector_id in list(self._connectors):
            await self.unregister(connector_id, reason)

    async def report_fatal(
        self,
        connector_id: str,
        reason: str,
        error: Exception | None = None,
    ) -> None:
        logger.error(f"Connector {connector_id} reported fatal error: {reason}")
        if self._on_fatal is None:
            return
        result = self._on_fatal(connector_id, reason, error)
        if inspect.isawaitable(result):
            await result

    def list(self) -> list[str]:
        return [*self._connectors]

"""Per-instance registrar over the engine's capability registries."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from loguru import logger

from nanoscout.connectors.base import Connector
from nanoscout.connectors.registry import ConnectorActionResult, ConnectorRegistry
from nanoscout.providers.base import InferenceProvider
from nanoscout.providers.images import ImageProvider
from nanoscout.providers.registry import ImageRegistry, InferenceRegistry

if TYPE_CHECKING:
    from nanoscout.agent.tools.base import Tool
    from nanoscout.agent.tools.registry import ToolResolver


@dataclass
class Registrations:
    connectors: set[str] = field(default_factory=set)
    inference: set[str] = field(default_factory=set)
    images: set[str] = field(default_factory=set)
    tools: set[str] = field(default_factory=set)

    def is_empty(self) -> bool:
        return not (self.connectors or self.inference or self.images or self.tools)


class PluginRegistrar:
    """
    Registers capabilities on behalf of one plugin instance.

    Remembers every id it registered per kind, so ``unregister_all``
    removes exactly those and nothing registered by anyone else.
    """

    def __init__(
        self,
        instance_id: str,
        connectors: ConnectorRegistry,
        inference: InferenceRegistry,
        images: ImageRegistry,
        tools: "ToolResolver",
    ):
        self.instance_id = instance_id
        self._connectors = connectors
        self._inference = inference
        self._images = images
        self._tools = tools
        self._registered = Registrations()

    def registrations(self) -> Registrations:
        return Registrations(
            connectors=set(self._registered.connectors),
            inference=set(self._registered.inference),
            images=set(self._registered.images),
            tools=set(self._registered.tools),
        )

    def register_connector(self, connector_id: str, connector: Connector) -> ConnectorActionResult:
        result = self._connectors.register(connector_id, connector)
        if result.status == "loaded":
            self._registered.connectors.add(connector_id)
        return result

    async def unregister_connector(self, connector_id: str, reason: str = "unload") -> ConnectorActionResult:
        self._registered.connectors.discard(connector_id)
        return await self._connectors.unregister(connector_id, reason)

    async def report_connector_fatal(self, connector_id: str, reason: str, error: Exception | None = None) -> None:
        await self._connectors.report_fatal(connector_id, reason, error)

    def register_inference_provider(self, provider: InferenceProvider) -> None:
        self._inference.register(self.instance_id, provider.id, provider)
        self._registered.inference.add(provider.id)

    def unregister_inference_provider(self, provider_id: str) -> None:
        self._inference.unregister(provider_id)
        self._registered.inference.discard(provider_id)

    def register_image_provider(self, provider: ImageProvider) -> None:
        self._images.register(self.instance_id, provider.id, provider)
        self._registered.images.add(provider.id)

    def unregister_image_provider(self, provider_id: str) -> None:
        self._images.unregister(provider_id)
        self._registered.images.discard(provider_id)

    def register_tool(self, tool: "Tool") -> None:
        self._tools.register_tool(self.instance_id, tool)
        self._registered.tools.add(tool.name)

    def unregister_tool(self, name: str) -> None:
        self._tools.unregister(name)
        self._registered.tools.discard(name)

    async def unregister_all(self) -> None:
        """Undo every registration this instance made."""
        registered = self._registered
        self._registered = Registrations()

        for connector_id in sorted(registered.connectors):
            await self._connectors.unregister(connector_id, "plugin-unload")
        for provider_id in registered.inference:
            if self._inference.owner(provider_id) == self.instance_id:
                self._inference.unregister(provider_id)
        for provider_id in registered.images:
            if self._images.owner(provider_id) == self.instance_id:
                self._images.unregister(provider_id)
        for name in registered.tools:
            if self._tools.owner(name) == self.instance_id:
                self._tools.unregister(name)

        if not registered.is_empty():
            logger.debug(f"Unregistered all capabilities for plugin {self.instance_id}")


class PluginRegistry:
    """The engine's capability registries, bundled for plugin wiring."""

    def __init__(
        self,
        connectors: ConnectorRegistry,
        inference: InferenceRegistry,
        images: ImageRegistry,
        tools: "ToolResolver",
    ):
        self.connectors = connectors
        self.inference = inference
        self.images = images
        self.tools = tools

    def create_registrar(self, instance_id: str) -> PluginRegistrar:
        return PluginRegistrar(instance_id, self.connectors, self.inference, self.images, self.tools)

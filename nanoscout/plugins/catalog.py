"""Catalog of plugins compiled into nanoscout."""

import importlib
from dataclasses import dataclass
from typing import Callable

from nanoscout.plugins.base import PluginDefinition

PluginEntry = str | Callable[[], PluginDefinition]


@dataclass(frozen=True)
class PluginDescriptor:
    """
    Catalog entry for one plugin implementation.

    ``entry`` is either ``"package.module:attribute"`` (imported on first
    load) or a callable returning the definition.
    """
    id: str
    name: str
    description: str
    entry: PluginEntry

    def load_definition(self) -> PluginDefinition:
        if callable(self.entry):
            return self.entry()
        module_name, _, attribute = self.entry.partition(":")
        module = importlib.import_module(module_name)
        definition = getattr(module, attribute or "plugin")
        if not isinstance(definition, PluginDefinition):
            raise TypeError(f"{self.entry} is not a plugin definition")
        return definition


BUILTIN_PLUGINS: tuple[PluginDescriptor, ...] = (
    PluginDescriptor(
        id="telegram",
        name="Telegram",
        description="Telegram bot connector (long polling).",
        entry="nanoscout.plugins.builtin.telegram:plugin",
    ),
    PluginDescriptor(
        id="litellm",
        name="LiteLLM",
        description="Inference provider for any model LiteLLM supports.",
        entry="nanoscout.plugins.builtin.litellm:plugin",
    ),
    PluginDescriptor(
        id="litellm-image",
        name="LiteLLM Images",
        description="Image generation through LiteLLM.",
        entry="nanoscout.plugins.builtin.litellm_image:plugin",
    ),
    PluginDescriptor(
        id="brave-search",
        name="Brave Search",
        description="Web search tool backed by the Brave Search API.",
        entry="nanoscout.plugins.builtin.brave_search:plugin",
    ),
)


def build_plugin_catalog() -> dict[str, PluginDescriptor]:
    return {descriptor.id: descriptor for descriptor in BUILTIN_PLUGINS}

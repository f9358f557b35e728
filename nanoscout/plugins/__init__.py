"""Plugin system: contract, catalog, registrar and manager."""

from nanoscout.plugins.base import (
    PluginApi,
    PluginDefinition,
    PluginInstance,
    PluginOnboardingApi,
    define_plugin,
)
from nanoscout.plugins.catalog import PluginDescriptor, build_plugin_catalog
from nanoscout.plugins.manager import PluginManager
from nanoscout.plugins.registry import PluginRegistrar, PluginRegistry

__all__ = [
    "PluginApi",
    "PluginDefinition",
    "PluginDescriptor",
    "PluginInstance",
    "PluginManager",
    "PluginOnboardingApi",
    "PluginRegistrar",
    "PluginRegistry",
    "build_plugin_catalog",
    "define_plugin",
]

"""Engine event bus and plugin event queue."""

from nanoscout.bus.events import (
    EngineEvent,
    EngineEventBus,
    PluginEvent,
    PluginEventQueue,
    PluginEventSource,
)
from nanoscout.bus.queue import PluginEventEngine

__all__ = [
    "EngineEvent",
    "EngineEventBus",
    "PluginEvent",
    "PluginEventEngine",
    "PluginEventQueue",
    "PluginEventSource",
]

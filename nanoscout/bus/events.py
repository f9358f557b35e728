"""Event types and in-process publish/subscribe for the engine."""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from loguru import logger

from nanoscout.utils.ids import new_id

DEFAULT_PLUGIN_QUEUE_SIZE = 1000


def _now() -> str:
    return datetime.now().isoformat()


@dataclass
class EngineEvent:
    """Something that happened inside the engine."""
    type: str
    payload: Any = None
    timestamp: str = field(default_factory=_now)
    plugin_id: str | None = None
    instance_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {"type": self.type, "payload": self.payload, "timestamp": self.timestamp}
        if self.plugin_id:
            data["pluginId"] = self.plugin_id
        if self.instance_id:
            data["instanceId"] = self.instance_id
        return data


EngineEventListener = Callable[[EngineEvent], None]


class EngineEventBus:
    """
    Synchronous fan-out of engine events.

    Listeners are called in subscription order on the emitting task. A
    failing listener is logged and skipped so one bad observer cannot starve
    the rest.
    """

    def __init__(self):
        self._listeners: list[EngineEventListener] = []

    def emit(self, type: str, payload: Any = None) -> EngineEvent:
        event = EngineEvent(type=type, payload=payload)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Engine event listener failed on {type}: {e}")
        return event

    def on_event(self, listener: EngineEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)


@dataclass(frozen=True)
class PluginEventSource:
    plugin_id: str
    instance_id: str


@dataclass
class PluginEvent:
    """An event raised by (or on behalf of) a plugin instance."""
    type: str
    plugin_id: str
    instance_id: str
    payload: Any = None
    id: str = field(default_factory=new_id)
    created_at: str = field(default_factory=_now)


PluginEventListener = Callable[[PluginEvent], None]


class PluginEventQueue:
    """
    Buffered plugin event stream.

    Every event is both kept in a bounded buffer for polling consumers
    (``drain``) and pushed live to listeners. When the buffer is full the
    oldest events are dropped.
    """

    def __init__(self, max_size: int = DEFAULT_PLUGIN_QUEUE_SIZE):
        self._queue: deque[PluginEvent] = deque(maxlen=max_size)
        self._listeners: list[PluginEventListener] = []

    def emit(self, source: PluginEventSource, type: str, payload: Any = None) -> PluginEvent:
        event = PluginEvent(
            type=type,
            plugin_id=source.plugin_id,
            instance_id=source.instance_id,
            payload=payload,
        )
        self.enqueue(event)
        return event

    def enqueue(self, event: PluginEvent) -> None:
        if self._queue.maxlen is not None and len(self._queue) == self._queue.maxlen:
            logger.warning("Plugin event queue full, dropping oldest event")
        self._queue.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(f"Plugin event listener failed on {event.type}: {e}")

    def drain(self) -> list[PluginEvent]:
        drained = list(self._queue)
        self._queue.clear()
        return drained

    def size(self) -> int:
        return len(self._queue)

    def on_event(self, listener: PluginEventListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

"""Async dispatch of plugin events to typed handlers."""

import asyncio
from typing import Awaitable, Callable

from loguru import logger

from nanoscout.bus.events import PluginEvent, PluginEventQueue

PluginEventHandler = Callable[[PluginEvent], Awaitable[None]]


class PluginEventEngine:
    """
    Routes plugin events to async handlers by event type.

    While running, each event becomes its own asyncio task so a slow handler
    never blocks the emitter. Events raised before ``start()`` stay buffered
    in the queue and are dispatched when the engine starts; while running,
    the buffer is drained as events arrive.
    """

    def __init__(self, queue: PluginEventQueue):
        self.queue = queue
        self._handlers: dict[str, PluginEventHandler] = {}
        self._unsubscribe: Callable[[], None] | None = None
        self._tasks: set[asyncio.Task] = set()

    def register(self, type: str, handler: PluginEventHandler) -> None:
        self._handlers[type] = handler

    def unregister(self, type: str) -> None:
        self._handlers.pop(type, None)

    @property
    def is_running(self) -> bool:
        return self._unsubscribe is not None

    def start(self) -> None:
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.queue.on_event(lambda _event: self._drain())
        self._drain()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    async def wait_idle(self) -> None:
        """Wait for every dispatched handler task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _drain(self) -> None:
        for event in self.queue.drain():
            self._dispatch(event)

    def _dispatch(self, event: PluginEvent) -> None:
        handler = self._handlers.get(event.type)
        if handler is None:
            return
        task = asyncio.create_task(self._run(handler, event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, handler: PluginEventHandler, event: PluginEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(f"Plugin event handler for {event.type} failed: {e}")

"""Cron scheduler: interval and one-shot tasks that feed the message pipeline."""

import asyncio
import inspect
import re
from typing import Any

from loguru import logger

from nanoscout.config.schema import CronTaskConfig
from nanoscout.connectors.base import ConnectorMessage, MessageContext
from nanoscout.cron.types import CronAction, CronErrorHandler, CronMessageSink
from nanoscout.errors import CronTaskError

_TASK_ID = re.compile(r"^task-(\d+)$")


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class CronScheduler:
    """
    Runs configured tasks on fixed intervals.

    Each armed task owns one asyncio task acting as its timer. One-shot
    tasks sleep once, dispatch and drop their timer; repeating tasks loop
    until ``stop()``. A task either injects ``message`` through
    ``on_message`` or runs a named ``action`` from the action table.

    Failures never escape: invalid intervals, unknown actions, missing
    messages and handler exceptions all go to ``on_error``.
    """

    def __init__(
        self,
        tasks: list[CronTaskConfig],
        on_message: CronMessageSink,
        actions: dict[str, CronAction] | None = None,
        on_error: CronErrorHandler | None = None,
    ):
        self._tasks = self._normalize_tasks(tasks)
        self._task_counter = self._seed_task_counter(self._tasks)
        self._on_message = on_message
        self._actions = dict(actions or {})
        self._on_error = on_error
        self._timers: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()
        self._started = False
        self._stopped = False

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    def start(self) -> None:
        if self._started or self._stopped:
            return
        self._started = True
        for task in self._tasks:
            if task.enabled:
                self._schedule_task(task)
        logger.info(f"Cron scheduler started with {len(self._tasks)} task(s)")

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        logger.info("Cron scheduler stopped")

    def register_action(self, name: str, action: CronAction) -> None:
        self._actions[name] = action

    def add_task(self, task: CronTaskConfig) -> CronTaskConfig:
        normalized = task if task.id else task.model_copy(update={"id": self._next_task_id()})

        if any(existing.id == normalized.id for existing in self._tasks):
            raise CronTaskError(f"Cron task already exists: {normalized.id}")

        self._tasks.append(normalized)
        if self.is_running and normalized.enabled:
            self._schedule_task(normalized)
        logger.info(f"Cron task added: {normalized.id} every {normalized.every_ms}ms")
        return normalized.model_copy()

    def remove_task(self, task_id: str) -> bool:
        timer = self._timers.pop(task_id, None)
        if timer:
            timer.cancel()
        before = len(self._tasks)
        self._tasks = [task for task in self._tasks if task.id != task_id]
        return len(self._tasks) != before

    def list_tasks(self) -> list[CronTaskConfig]:
        return [task.model_copy(deep=True) for task in self._tasks]

    async def wait_idle(self) -> None:
        """Wait for dispatches already in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # -- Scheduling -----------------------------------------------------

    def _schedule_task(self, task: CronTaskConfig) -> None:
        if not task.has_valid_interval:
            self._spawn(self._report_error(CronTaskError(f"Invalid interval for task {task.id}"), task))
            return

        if task.run_on_start:
            self._spawn(self._dispatch(task))

        if task.once:
            if not task.run_on_start:
                self._timers[task.id] = asyncio.create_task(self._run_once(task))
        else:
            self._timers[task.id] = asyncio.create_task(self._run_every(task))

    async def _run_once(self, task: CronTaskConfig) -> None:
        await asyncio.sleep(task.every_ms / 1000)
        try:
            await self._dispatch(task)
        finally:
            self._timers.pop(task.id, None)

    async def _run_every(self, task: CronTaskConfig) -> None:
        interval = task.every_ms / 1000
        while not self._stopped:
            await asyncio.sleep(interval)
            # Dispatch runs beside the timer so a slow task never delays the next tick.
            self._spawn(self._dispatch(task))

    def _spawn(self, coro) -> None:
        dispatch = asyncio.create_task(coro)
        self._inflight.add(dispatch)
        dispatch.add_done_callback(self._inflight.discard)

    # -- Dispatch -------------------------------------------------------

    async def _dispatch(self, task: CronTaskConfig) -> None:
        if self._stopped:
            return

        context = MessageContext(
            channel_id=task.channel_id or task.session_id or f"cron:{task.id}",
            user_id=task.user_id,
            session_id=task.session_id,
        )

        try:
            if task.action:
                handler = self._actions.get(task.action)
                if handler is None:
                    await self._report_error(
                        CronTaskError(f"Missing cron action handler: {task.action}"), task
                    )
                    return
                await _maybe_await(handler(task, context))
                return

            if task.message is None:
                await self._report_error(CronTaskError(f"Missing message for cron task {task.id}"), task)
                return

            await _maybe_await(self._on_message(ConnectorMessage(text=task.message), context, task))
        except Exception as e:
            await self._report_error(e, task)

    async def _report_error(self, error: Exception, task: CronTaskConfig) -> None:
        if self._on_error is None:
            logger.warning(f"Cron task {task.id} failed: {error}")
            return
        try:
            await _maybe_await(self._on_error(error, task))
        except Exception as e:
            logger.error(f"Cron error handler failed for {task.id}: {e}")

    # -- Ids ------------------------------------------------------------

    def _next_task_id(self) -> str:
        existing = {task.id for task in self._tasks}
        candidate = self._task_counter + 1
        while f"task-{candidate}" in existing:
            candidate += 1
        self._task_counter = candidate
        return f"task-{candidate}"

    @staticmethod
    def _normalize_tasks(tasks: list[CronTaskConfig]) -> list[CronTaskConfig]:
        return [
            task if task.id else task.model_copy(update={"id": f"task-{index + 1}"})
            for index, task in enumerate(tasks)
        ]

    @staticmethod
    def _seed_task_counter(tasks: list[CronTaskConfig]) -> int:
        highest = 0
        for task in tasks:
            match = _TASK_ID.match(task.id or "")
            if match:
                highest = max(highest, int(match.group(1)))
        return max(highest, len(tasks))

"""Tool for scheduling messages back to the current chat."""

from typing import Callable

from pydantic import Field

from nanoscout.agent.tools.base import Tool, ToolArgs, ToolExecutionContext, ToolOutput
from nanoscout.config.schema import CronTaskConfig
from nanoscout.cron.service import CronScheduler


class AddCronArgs(ToolArgs):
    id: str | None = Field(default=None, min_length=1, description="Optional task id")
    every_ms: float = Field(
        ge=1,
        alias="everyMs",
        description="Delay (once) or interval (repeating) in milliseconds",
    )
    message: str = Field(min_length=1, description="Text to send when the task fires")
    run_on_start: bool | None = Field(default=None, alias="runOnStart")
    once: bool | None = Field(default=None, description="Fire a single time (default true)")
    channel_id: str | None = Field(default=None, min_length=1, alias="channelId")
    session_id: str | None = Field(default=None, min_length=1, alias="sessionId")
    user_id: str | None = Field(default=None, alias="userId")
    source: str | None = Field(default=None, min_length=1, description="Connector id")


class AddCronTool(Tool):
    """Schedules a ``send-message`` cron task targeting the current conversation."""

    Args = AddCronArgs

    def __init__(
        self,
        cron: CronScheduler | None,
        on_task_added: Callable[[CronTaskConfig], None] | None = None,
    ):
        self._cron = cron
        self._on_task_added = on_task_added

    @property
    def name(self) -> str:
        return "add_cron"

    @property
    def description(self) -> str:
        return (
            "Schedule a cron task that sends a message to the current chat. "
            "Defaults to a one-shot timer unless once=false."
        )

    async def execute(self, args: AddCronArgs, context: ToolExecutionContext) -> ToolOutput:
        if self._cron is None:
            raise RuntimeError("Cron scheduler unavailable")
        if context.connector_registry is None:
            raise RuntimeError("Connector registry unavailable")

        source = args.source or context.source
        if not context.connector_registry.has(source):
            raise RuntimeError(f"Connector not loaded: {source}")

        task = self._cron.add_task(CronTaskConfig(
            id=args.id,
            every_ms=args.every_ms,
            message=args.message,
            run_on_start=bool(args.run_on_start),
            once=True if args.once is None else args.once,
            channel_id=args.channel_id or context.message_context.channel_id,
            session_id=args.session_id or context.message_context.session_id,
            user_id=args.user_id or context.message_context.user_id,
            action="send-message",
            source=source,
        ))
        if self._on_task_added:
            self._on_task_added(task)

        suffix = " (once)" if task.once else ""
        return ToolOutput(
            text=f"Scheduled cron task {task.id} every {task.every_ms:g}ms{suffix}.",
            details={"taskId": task.id},
        )

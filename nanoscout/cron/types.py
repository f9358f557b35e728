"""Cron types."""

from typing import Awaitable, Callable

from nanoscout.config.schema import CronTaskConfig
from nanoscout.connectors.base import ConnectorMessage, MessageContext

CronMessageSink = Callable[[ConnectorMessage, MessageContext, CronTaskConfig], Awaitable[None] | None]
CronAction = Callable[[CronTaskConfig, MessageContext], Awaitable[None] | None]
CronErrorHandler = Callable[[Exception, CronTaskConfig], Awaitable[None] | None]

__all__ = ["CronAction", "CronErrorHandler", "CronMessageSink", "CronTaskConfig"]

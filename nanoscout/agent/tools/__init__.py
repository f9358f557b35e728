"""Agent tools."""

from nanoscout.agent.tools.base import (
    Tool,
    ToolArgs,
    ToolExecutionContext,
    ToolExecutionResult,
    ToolOutput,
)
from nanoscout.agent.tools.registry import ToolResolver

__all__ = [
    "Tool",
    "ToolArgs",
    "ToolExecutionContext",
    "ToolExecutionResult",
    "ToolOutput",
    "ToolResolver",
]

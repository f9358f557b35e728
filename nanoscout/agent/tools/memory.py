"""Keyword search over remembered conversation text."""

from pydantic import Field

from nanoscout.agent.tools.base import Tool, ToolArgs, ToolExecutionContext, ToolOutput
from nanoscout.memory.store import MemoryStore


class MemorySearchArgs(ToolArgs):
    query: str = Field(min_length=1, description="Keyword or phrase to look for")
    limit: int = Field(default=10, ge=1, le=50, description="Maximum entries to return")


class MemorySearchTool(Tool):
    """Searches what was said in any session, newest matches last."""

    Args = MemorySearchArgs

    def __init__(self, memory: MemoryStore | None):
        self._memory = memory

    @property
    def name(self) -> str:
        return "memory_search"

    @property
    def description(self) -> str:
        return "Search memory entries by keyword."

    async def execute(self, args: MemorySearchArgs, context: ToolExecutionContext) -> ToolOutput:
        if self._memory is None:
            raise RuntimeError("Memory store unavailable")

        entries = await self._memory.query(args.query, args.limit)
        if entries:
            text = "\n".join(f"[{entry.session_id}] {entry.text or ''}" for entry in entries)
        else:
            text = "No memory matches."
        return ToolOutput(
            text=text,
            details={
                "count": len(entries),
                "entries": [entry.model_dump(mode="json", by_alias=True) for entry in entries],
            },
        )

"""Tool resolver: looks up, validates and runs tool calls."""

from typing import Any

from loguru import logger
from pydantic import ValidationError

from nanoscout.agent.tools.base import Tool, ToolExecutionContext, ToolExecutionResult, ToolOutput
from nanoscout.providers.base import ToolCallRequest
from nanoscout.utils.registry import CapabilityRegistry


def _format_validation_error(error: ValidationError) -> str:
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "arguments"
        problems.append(f"{location}: {item['msg']}")
    return "Invalid arguments: " + "; ".join(problems)


class ToolResolver(CapabilityRegistry[Tool]):
    """
    Registry of tools keyed by name.

    ``execute`` never raises: unknown tools, invalid arguments and tool
    exceptions all come back as error-tagged tool results the model can read.
    """

    kind = "Tool"

    def register_tool(self, plugin_id: str, tool: Tool) -> None:
        self.register(plugin_id, tool.name, tool)

    def get_definitions(self) -> list[dict[str, Any]]:
        """Get all tool definitions in OpenAI format."""
        return [tool.to_schema() for tool in self.list()]

    @property
    def tool_names(self) -> list[str]:
        return self.ids()

    async def execute(self, call: ToolCallRequest, context: ToolExecutionContext) -> ToolExecutionResult:
        tool = self.get(call.name)
        if tool is None:
            return ToolExecutionResult.error(call.id, call.name, f"Unknown tool: {call.name}")

        try:
            args = tool.validate_params(call.arguments)
        except ValidationError as e:
            logger.warning(f"Tool {call.name} rejected arguments: {e}")
            return ToolExecutionResult.error(call.id, call.name, _format_validation_error(e))

        try:
            output = await tool.execute(args, context)
        except Exception as e:
            logger.warning(f"Tool execution failed: {call.name}: {e}")
            return ToolExecutionResult.error(call.id, call.name, str(e) or "Tool execution failed.")

        if isinstance(output, str):
            output = ToolOutput(text=output)
        return ToolExecutionResult.success(call.id, call.name, output)

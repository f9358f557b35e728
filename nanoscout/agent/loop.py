"""Agent loop: the bounded inference and tool-execution cycle."""

from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from nanoscout.agent.context import extract_tool_calls
from nanoscout.agent.tools.base import ToolExecutionContext
from nanoscout.agent.tools.registry import ToolResolver
from nanoscout.connectors.base import FileReference
from nanoscout.providers.base import InferenceContext, LLMResponse
from nanoscout.providers.router import InferenceObserver, InferenceRouter

MAX_TOOL_ITERATIONS = 5


@dataclass
class LoopOutcome:
    """Result of one turn through the loop."""
    response: LLMResponse | None
    files: list[FileReference] = field(default_factory=list)
    limit_reached: bool = False

    @property
    def message(self) -> dict[str, Any] | None:
        return self.response.to_message() if self.response else None


class AgentLoop:
    """
    The agent loop is the core processing engine.

    It:
    1. Sends the conversation and tool definitions to the inference router
    2. Executes every tool call in the reply and appends the results
    3. Repeats until the model answers without tool calls, or the
       iteration bound is hit

    ``messages`` is the session's own message list and is extended in place,
    so the conversation state always reflects what the model has seen.
    Inference errors propagate; tool errors come back as tool results.
    """

    def __init__(
        self,
        router: InferenceRouter,
        tools: ToolResolver,
        max_iterations: int = MAX_TOOL_ITERATIONS,
    ):
        self.router = router
        self.tools = tools
        self.max_iterations = max_iterations

    async def run(
        self,
        messages: list[dict[str, Any]],
        session_id: str,
        tool_context: ToolExecutionContext,
        observer: InferenceObserver | None = None,
        system_prompt: str | None = None,
    ) -> LoopOutcome:
        context = InferenceContext(
            messages=messages,
            tools=self.tools.get_definitions(),
            system_prompt=system_prompt or None,
        )
        outcome = LoopOutcome(response=None)

        iteration = 0
        while iteration < self.max_iterations:
            iteration += 1

            result = await self.router.complete(context, session_id, observer)
            outcome.response = result.response
            message = result.response.to_message()
            messages.append(message)

            tool_calls = extract_tool_calls(message)
            if not tool_calls:
                break

            for tool_call in tool_calls:
                logger.info(f"Tool call: {tool_call.name} (session {session_id})")
                tool_result = await self.tools.execute(tool_call, tool_context)
                messages.append(tool_result.message)
                outcome.files.extend(tool_result.files)

            if iteration == self.max_iterations:
                outcome.limit_reached = True
                logger.warning(
                    f"Tool execution limit ({self.max_iterations}) reached for session {session_id}"
                )

        return outcome

"""Tests for the bounded inference and tool loop."""

import pytest
from loguru import logger

from conftest import FailingClient, FakeClient, FakeProvider, text_reply, tool_reply
from nanoscout.agent import MAX_TOOL_ITERATIONS, AgentLoop
from nanoscout.agent.tools import Tool, ToolArgs, ToolExecutionContext, ToolOutput, ToolResolver
from nanoscout.config.schema import InferenceProviderConfig
from nanoscout.connectors.base import FileReference, MessageContext
from nanoscout.providers import InferenceRegistry, InferenceRouter
from nanoscout.session.types import Session


class CountingTool(Tool):
    Args = ToolArgs

    def __init__(self):
        self.runs = 0

    @property
    def name(self) -> str:
        return "count"

    @property
    def description(self) -> str:
        return "Count invocations"

    async def execute(self, args, context):
        self.runs += 1
        return ToolOutput(
            text=f"run {self.runs}",
            files=[FileReference(id=f"f{self.runs}", name="out.txt", mime_type="text/plain", size=1, path="/tmp/out.txt")],
        )


def make_loop(client, auth_store, tool=None):
    registry = InferenceRegistry()
    registry.register("test", "scripted", FakeProvider("scripted", client))
    router = InferenceRouter([InferenceProviderConfig(id="scripted")], registry, auth_store)
    tools = ToolResolver()
    if tool is not None:
        tools.register_tool("core", tool)
    return AgentLoop(router, tools)


def make_context(file_store, auth_store):
    return ToolExecutionContext(
        connector_registry=None,
        file_store=file_store,
        auth=auth_store,
        logger=logger,
        session=Session(id="s1", storage_id="log-1"),
        source="chat",
        message_context=MessageContext(channel_id="chat-1"),
    )


class TestAgentLoop:
    """Test iteration, tool execution and the iteration bound."""

    @pytest.mark.asyncio
    async def test_plain_answer(self, file_store, auth_store):
        client = FakeClient([text_reply("hello")])
        loop = make_loop(client, auth_store)
        messages = [{"role": "user", "content": "hi"}]

        outcome = await loop.run(messages, "s1", make_context(file_store, auth_store), system_prompt="Be brief.")

        assert outcome.response.content == "hello"
        assert not outcome.limit_reached
        assert messages[-1] == {"role": "assistant", "content": "hello"}
        assert client.calls[0][0] == {"role": "system", "content": "Be brief."}

    @pytest.mark.asyncio
    async def test_tool_then_answer(self, file_store, auth_store):
        """Tool results are appended and fed into the next inference call."""
        tool = CountingTool()
        client = FakeClient([tool_reply("count"), text_reply("counted")])
        loop = make_loop(client, auth_store, tool)
        messages = [{"role": "user", "content": "count"}]

        outcome = await loop.run(messages, "s1", make_context(file_store, auth_store))

        assert tool.runs == 1
        assert outcome.message == {"role": "assistant", "content": "counted"}
        assert [f.id for f in outcome.files] == ["f1"]
        assert [m["role"] for m in messages] == ["user", "assistant", "tool", "assistant"]
        assert messages[2]["content"] == "run 1"
        assert client.calls[1][-1]["role"] == "tool"

    @pytest.mark.asyncio
    async def test_iteration_bound(self, file_store, auth_store):
        """A model that keeps calling tools gets exactly the bounded number of attempts."""
        tool = CountingTool()
        client = FakeClient(lambda context: tool_reply("count"))
        loop = make_loop(client, auth_store, tool)
        messages = [{"role": "user", "content": "loop forever"}]

        outcome = await loop.run(messages, "s1", make_context(file_store, auth_store))

        assert MAX_TOOL_ITERATIONS == 5
        assert len(client.calls) == MAX_TOOL_ITERATIONS
        assert tool.runs == MAX_TOOL_ITERATIONS
        assert outcome.limit_reached
        assert outcome.response.content is None
        assert len(outcome.files) == MAX_TOOL_ITERATIONS

    @pytest.mark.asyncio
    async def test_answer_on_last_iteration_is_not_a_limit(self, file_store, auth_store):
        tool = CountingTool()
        script = [tool_reply("count") for _ in range(MAX_TOOL_ITERATIONS - 1)] + [text_reply("finally")]
        loop = make_loop(FakeClient(script), auth_store, tool)

        outcome = await loop.run([{"role": "user", "content": "x"}], "s1", make_context(file_store, auth_store))

        assert not outcome.limit_reached
        assert outcome.response.content == "finally"

    @pytest.mark.asyncio
    async def test_unknown_tool_is_reported_to_the_model(self, file_store, auth_store):
        client = FakeClient([tool_reply("missing"), text_reply("sorry")])
        loop = make_loop(client, auth_store)
        messages = [{"role": "user", "content": "x"}]

        await loop.run(messages, "s1", make_context(file_store, auth_store))

        assert messages[2]["is_error"] is True
        assert messages[2]["content"] == "Unknown tool: missing"

    @pytest.mark.asyncio
    async def test_inference_errors_propagate(self, file_store, auth_store):
        loop = make_loop(FailingClient(), auth_store)

        with pytest.raises(RuntimeError, match="upstream exploded"):
            await loop.run([{"role": "user", "content": "x"}], "s1", make_context(file_store, auth_store))

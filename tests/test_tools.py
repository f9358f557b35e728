"""Tests for the tool resolver and the built-in core tools."""

import pytest
from loguru import logger
from pydantic import Field

from conftest import FakeConnector
from nanoscout.agent.tools import Tool, ToolArgs, ToolExecutionContext, ToolOutput, ToolResolver
from nanoscout.agent.tools.cron import AddCronTool
from nanoscout.agent.tools.image_generation import GenerateImageTool
from nanoscout.connectors import ConnectorRegistry
from nanoscout.connectors.base import MessageContext
from nanoscout.cron import CronScheduler
from nanoscout.providers import ImageGenerationResult, ImageProvider, ImageRegistry
from nanoscout.providers.base import ToolCallRequest
from nanoscout.session.types import Session


class EchoArgs(ToolArgs):
    text: str = Field(min_length=1)
    times: int = 1


class EchoTool(Tool):
    Args = EchoArgs

    @property
    def name(self) -> str:
        return "echo"

    @property
    def description(self) -> str:
        return "Echo text back"

    async def execute(self, args: EchoArgs, context):
        return " ".join([args.text] * args.times)


class ExplodingTool(EchoTool):
    @property
    def name(self) -> str:
        return "explode"

    async def execute(self, args, context):
        raise RuntimeError("kaboom")


class FakeImageProvider(ImageProvider):
    def __init__(self, id, file_store):
        self.id = id
        self.label = id
        self.file_store = file_store
        self.requests = []

    async def generate(self, request, context):
        self.requests.append(request)
        files = []
        for index in range(request.count):
            stored = await self.file_store.save_bytes(b"\x89PNG", name=f"{self.id}-{index}.png", mime_type="image/png")
            files.append(stored.to_reference())
        return ImageGenerationResult(files=files)


def make_context(file_store, auth_store, connectors=None, source="chat", channel_id="chat-1"):
    return ToolExecutionContext(
        connector_registry=connectors,
        file_store=file_store,
        auth=auth_store,
        logger=logger,
        session=Session(id="s1", storage_id="log-1"),
        source=source,
        message_context=MessageContext(channel_id=channel_id, user_id="user-1"),
    )


def call(name, arguments=None, call_id="call-1"):
    return ToolCallRequest(id=call_id, name=name, arguments=arguments or {})


class TestToolResolver:
    """Test lookup, validation and error capture."""

    @pytest.mark.asyncio
    async def test_success_wraps_plain_text(self, file_store, auth_store):
        resolver = ToolResolver()
        resolver.register_tool("core", EchoTool())

        result = await resolver.execute(call("echo", {"text": "hi", "times": 2}), make_context(file_store, auth_store))

        assert not result.is_error
        assert result.message["role"] == "tool"
        assert result.message["tool_call_id"] == "call-1"
        assert result.message["content"] == "hi hi"
        assert result.files == []

    @pytest.mark.asyncio
    async def test_unknown_tool(self, file_store, auth_store):
        result = await ToolResolver().execute(call("nope"), make_context(file_store, auth_store))

        assert result.is_error
        assert result.message["content"] == "Unknown tool: nope"

    @pytest.mark.asyncio
    async def test_invalid_arguments(self, file_store, auth_store):
        """Schema violations are reported without running the tool."""
        resolver = ToolResolver()
        resolver.register_tool("core", EchoTool())

        missing = await resolver.execute(call("echo", {}), make_context(file_store, auth_store))
        extra = await resolver.execute(call("echo", {"text": "a", "loud": True}), make_context(file_store, auth_store))

        assert missing.is_error
        assert missing.message["content"].startswith("Invalid arguments: text")
        assert extra.is_error
        assert "loud" in extra.message["content"]

    @pytest.mark.asyncio
    async def test_tool_exception_becomes_error_result(self, file_store, auth_store):
        resolver = ToolResolver()
        resolver.register_tool("core", ExplodingTool())

        result = await resolver.execute(call("explode", {"text": "x"}), make_context(file_store, auth_store))

        assert result.is_error
        assert result.message["content"] == "kaboom"

    def test_definitions(self):
        resolver = ToolResolver()
        resolver.register_tool("core", EchoTool())

        [definition] = resolver.get_definitions()

        assert definition["type"] == "function"
        assert definition["function"]["name"] == "echo"
        assert "text" in definition["function"]["parameters"]["properties"]
        assert resolver.tool_names == ["echo"]


class TestAddCronTool:
    """Test scheduling messages from a conversation."""

    def make(self, file_store, auth_store):
        connectors = ConnectorRegistry(on_message=lambda *args: None)
        connectors.register("chat", FakeConnector())
        cron = CronScheduler([], on_message=lambda *args: None)
        added = []
        tool = AddCronTool(cron, on_task_added=added.append)
        return tool, cron, added, make_context(file_store, auth_store, connectors)

    @pytest.mark.asyncio
    async def test_defaults_come_from_the_conversation(self, file_store, auth_store):
        """Target defaults to the current chat and the task is one-shot."""
        tool, cron, added, context = self.make(file_store, auth_store)
        resolver = ToolResolver()
        resolver.register_tool("core", tool)

        result = await resolver.execute(call("add_cron", {"everyMs": 60000, "message": "stand up"}), context)

        assert not result.is_error
        [task] = cron.list_tasks()
        assert task.id == "task-1"
        assert task.once is True
        assert task.action == "send-message"
        assert task.source == "chat"
        assert task.channel_id == "chat-1"
        assert task.user_id == "user-1"
        assert task.message == "stand up"
        assert [t.id for t in added] == ["task-1"]
        assert result.message["details"] == {"taskId": "task-1"}
        assert "task-1" in result.message["content"]

    @pytest.mark.asyncio
    async def test_repeating_with_explicit_target(self, file_store, auth_store):
        tool, cron, _, context = self.make(file_store, auth_store)

        output = await tool.execute(
            tool.validate_params({"id": "daily", "everyMs": 1000, "message": "hi", "once": False, "channelId": "other"}),
            context,
        )

        [task] = cron.list_tasks()
        assert isinstance(output, ToolOutput)
        assert task.id == "daily"
        assert task.once is False
        assert task.channel_id == "other"

    @pytest.mark.asyncio
    async def test_unknown_connector_is_rejected(self, file_store, auth_store):
        tool, cron, added, context = self.make(file_store, auth_store)
        resolver = ToolResolver()
        resolver.register_tool("core", tool)

        result = await resolver.execute(
            call("add_cron", {"everyMs": 10, "message": "x", "source": "missing"}), context
        )

        assert result.is_error
        assert result.message["content"] == "Connector not loaded: missing"
        assert cron.list_tasks() == []
        assert added == []

    @pytest.mark.asyncio
    async def test_duplicate_id_is_an_error_result(self, file_store, auth_store):
        tool, cron, _, context = self.make(file_store, auth_store)
        resolver = ToolResolver()
        resolver.register_tool("core", tool)
        args = {"id": "dup", "everyMs": 10, "message": "x"}

        await resolver.execute(call("add_cron", args), context)
        second = await resolver.execute(call("add_cron", args), context)

        assert second.is_error
        assert "already exists" in second.message["content"]
        assert len(cron.list_tasks()) == 1

    @pytest.mark.asyncio
    async def test_invalid_interval_rejected_by_schema(self, file_store, auth_store):
        tool, _, _, context = self.make(file_store, auth_store)
        resolver = ToolResolver()
        resolver.register_tool("core", tool)

        result = await resolver.execute(call("add_cron", {"everyMs": 0, "message": "x"}), context)

        assert result.is_error
        assert result.message["content"].startswith("Invalid arguments")


class TestGenerateImageTool:
    """Test image provider selection."""

    @pytest.mark.asyncio
    async def test_single_provider_is_used_implicitly(self, file_store, auth_store):
        images = ImageRegistry()
        provider = FakeImageProvider("painter", file_store)
        images.register("plugin", "painter", provider)
        tool = GenerateImageTool(images)

        output = await tool.execute(tool.validate_params({"prompt": "a cat", "count": 2}), make_context(file_store, auth_store))

        assert len(output.files) == 2
        assert output.details["provider"] == "painter"
        assert provider.requests[0].prompt == "a cat"
        assert output.files[0].mime_type == "image/png"

    @pytest.mark.asyncio
    async def test_multiple_providers_need_a_choice(self, file_store, auth_store):
        images = ImageRegistry()
        images.register("plugin", "a", FakeImageProvider("a", file_store))
        images.register("plugin", "b", FakeImageProvider("b", file_store))
        tool = GenerateImageTool(images)

        with pytest.raises(RuntimeError, match="specify provider"):
            await tool.execute(tool.validate_params({"prompt": "x"}), make_context(file_store, auth_store))

        output = await tool.execute(tool.validate_params({"prompt": "x", "provider": "b"}), make_context(file_store, auth_store))
        assert output.details["provider"] == "b"

    @pytest.mark.asyncio
    async def test_no_providers(self, file_store, auth_store):
        tool = GenerateImageTool(ImageRegistry())

        with pytest.raises(RuntimeError, match="No image generation providers"):
            await tool.execute(tool.validate_params({"prompt": "x"}), make_context(file_store, auth_store))

    @pytest.mark.asyncio
    async def test_unknown_provider(self, file_store, auth_store):
        images = ImageRegistry()
        images.register("plugin", "a", FakeImageProvider("a", file_store))
        tool = GenerateImageTool(images)

        with pytest.raises(RuntimeError, match="Unknown image provider: z"):
            await tool.execute(tool.validate_params({"prompt": "x", "provider": "z"}), make_context(file_store, auth_store))

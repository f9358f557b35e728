"""Tests for keyword memory and the memory_search tool."""

import json

import pytest
from loguru import logger

from nanoscout.agent.tools import ToolExecutionContext, ToolResolver
from nanoscout.agent.tools.memory import MemorySearchTool
from nanoscout.connectors.base import FileReference, MessageContext
from nanoscout.memory import MemoryStore
from nanoscout.providers.base import ToolCallRequest
from nanoscout.session.types import Session


class TestMemoryStore:
    """Test recording, searching and pruning."""

    @pytest.mark.asyncio
    async def test_query_is_case_insensitive_and_keeps_order(self, tmp_path):
        store = MemoryStore(tmp_path / "memory")
        await store.record("s1", "telegram", "user", "Buy oat MILK")
        await store.record("s1", "telegram", "assistant", "Added to the list")
        await store.record("s2", "telegram", "user", "milk is out again")

        matches = await store.query("milk")

        assert [(e.session_id, e.text) for e in matches] == [("s1", "Buy oat MILK"), ("s2", "milk is out again")]

    @pytest.mark.asyncio
    async def test_limit_keeps_newest(self, tmp_path):
        store = MemoryStore(tmp_path)
        for i in range(5):
            await store.record("s1", "cron", "user", f"note {i}")

        assert [e.text for e in await store.query("note", limit=2)] == ["note 3", "note 4"]
        assert [e.text for e in await store.query("  ", limit=3)] == ["note 2", "note 3", "note 4"]

    @pytest.mark.asyncio
    async def test_entries_without_text_only_match_empty_query(self, tmp_path):
        store = MemoryStore(tmp_path)
        file = FileReference(id="f1", name="a.png", mime_type="image/png", size=3, path="/tmp/a.png")
        await store.record("s1", "telegram", "user", None, [file])

        assert await store.query("a.png") == []
        [entry] = await store.query("")
        assert entry.files[0].to_reference() == file

    @pytest.mark.asyncio
    async def test_max_entries_prunes_oldest(self, tmp_path):
        store = MemoryStore(tmp_path, max_entries=3)
        for i in range(5):
            await store.record("s1", "telegram", "user", f"line {i}")

        assert [e.text for e in store.read_entries()] == ["line 2", "line 3", "line 4"]
        assert len(store.path.read_text().splitlines()) == 3

    @pytest.mark.asyncio
    async def test_lines_use_camel_case(self, tmp_path):
        store = MemoryStore(tmp_path)
        await store.record("s1", "telegram", "assistant", "hello")

        record = json.loads(store.path.read_text().splitlines()[0])

        assert record["sessionId"] == "s1"
        assert record["role"] == "assistant"
        assert "createdAt" in record

    def test_malformed_lines_are_skipped(self, tmp_path):
        good = {"id": "m1", "sessionId": "s1", "source": "telegram", "role": "user",
                "text": "kept", "createdAt": "2025-01-01T10:00:00"}
        (tmp_path / "memory.jsonl").write_text(
            "\n".join(["{broken", json.dumps({"role": "nobody"}), "", json.dumps(good)]) + "\n"
        )

        assert [e.text for e in MemoryStore(tmp_path).read_entries()] == ["kept"]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        store = MemoryStore(tmp_path / "nope")

        assert store.read_entries() == []
        assert await store.query("anything") == []


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


def search(arguments):
    return ToolCallRequest(id="call-1", name="memory_search", arguments=arguments)


class TestMemorySearchTool:
    """Test the memory_search tool through the resolver."""

    @pytest.mark.asyncio
    async def test_matches_are_listed_by_session(self, tmp_path, file_store, auth_store):
        store = MemoryStore(tmp_path / "memory")
        await store.record("s1", "chat", "user", "the wifi password is hunter2")
        await store.record("s2", "chat", "user", "unrelated")
        resolver = ToolResolver()
        resolver.register_tool("core", MemorySearchTool(store))

        result = await resolver.execute(search({"query": "WiFi"}), make_context(file_store, auth_store))

        assert not result.is_error
        assert result.message["content"] == "[s1] the wifi password is hunter2"
        details = result.message["details"]
        assert details["count"] == 1
        assert details["entries"][0]["sessionId"] == "s1"

    @pytest.mark.asyncio
    async def test_no_matches(self, tmp_path, file_store, auth_store):
        resolver = ToolResolver()
        resolver.register_tool("core", MemorySearchTool(MemoryStore(tmp_path)))

        result = await resolver.execute(search({"query": "anything"}), make_context(file_store, auth_store))

        assert result.message["content"] == "No memory matches."
        assert result.message["details"] == {"count": 0, "entries": []}

    @pytest.mark.asyncio
    async def test_arguments_are_bounded(self, tmp_path, file_store, auth_store):
        resolver = ToolResolver()
        resolver.register_tool("core", MemorySearchTool(MemoryStore(tmp_path)))
        context = make_context(file_store, auth_store)

        empty = await resolver.execute(search({"query": ""}), context)
        too_many = await resolver.execute(search({"query": "x", "limit": 51}), context)

        assert empty.is_error
        assert too_many.is_error

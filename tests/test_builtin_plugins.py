"""Tests for the LiteLLM providers and the Brave Search tool."""

import base64
from types import SimpleNamespace

import httpx
import pytest
from loguru import logger

from nanoscout.agent.tools import ToolExecutionContext
from nanoscout.connectors.base import MessageContext
from nanoscout.plugins.builtin import brave_search
from nanoscout.providers import litellm_provider
from nanoscout.providers.base import InferenceContext, InferenceProviderOptions
from nanoscout.providers.images import ImageGenerationContext, ImageGenerationRequest
from nanoscout.providers.litellm_provider import LiteLLMClient, LiteLLMImageProvider, LiteLLMProvider
from nanoscout.session.types import Session


def completion(content=None, tool_calls=None, finish_reason="stop"):
    message = SimpleNamespace(content=content, tool_calls=tool_calls, reasoning_content=None)
    return SimpleNamespace(
        choices=[SimpleNamespace(message=message, finish_reason=finish_reason)],
        usage=SimpleNamespace(prompt_tokens=3, completion_tokens=2, total_tokens=5),
    )


def tool_call(name, arguments, call_id="tc-1"):
    return SimpleNamespace(id=call_id, function=SimpleNamespace(name=name, arguments=arguments))


def options(auth_store, model=None, **config):
    return InferenceProviderOptions(provider_id="llm", auth=auth_store, logger=logger, model=model, config=config)


class TestLiteLLMProvider:
    """Test client construction rules."""

    @pytest.mark.asyncio
    async def test_missing_key_refuses(self, auth_store):
        provider = LiteLLMProvider("llm")

        with pytest.raises(ValueError, match="Missing apiKey"):
            await provider.create_client(options(auth_store))

    @pytest.mark.asyncio
    async def test_key_from_auth_store(self, auth_store):
        auth_store.set_api_key("llm", "sk-stored")
        provider = LiteLLMProvider("llm", settings={"model": "openai/gpt-4o-mini", "maxTokens": 256})

        client = await provider.create_client(options(auth_store))

        assert client.model_id == "openai/gpt-4o-mini"
        assert client.api_key == "sk-stored"
        assert client.max_tokens == 256

    @pytest.mark.asyncio
    async def test_router_options_override_settings(self, auth_store):
        """The configured model and options win over the plugin settings."""
        provider = LiteLLMProvider("llm", settings={"model": "a/b", "apiBase": "http://localhost:4000"})

        client = await provider.create_client(options(auth_store, model="c/d", temperature=0.1))

        assert client.model_id == "c/d"
        assert client.api_key is None
        assert client.api_base == "http://localhost:4000"
        assert client.temperature == 0.1


class TestLiteLLMClient:
    """Test request shaping and response parsing."""

    @pytest.mark.asyncio
    async def test_request_and_tool_call_parsing(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**kwargs):
            captured.update(kwargs)
            return completion(tool_calls=[tool_call("web_search", '{"query": "weather",}')], finish_reason="tool_calls")

        monkeypatch.setattr(litellm_provider, "acompletion", fake_acompletion)
        client = LiteLLMClient("openai/gpt-4o-mini", api_key="sk")
        context = InferenceContext(
            messages=[
                {"role": "user", "content": "hi"},
                {"role": "tool", "tool_call_id": "x", "name": "t", "content": "r", "is_error": False},
            ],
            tools=[{"type": "function", "function": {"name": "web_search"}}],
            system_prompt="Be brief.",
        )

        response = await client.complete(context, "s1")

        assert captured["messages"][0] == {"role": "system", "content": "Be brief."}
        assert "is_error" not in captured["messages"][2]
        assert captured["tool_choice"] == "auto"
        assert captured["api_key"] == "sk"
        assert captured["metadata"] == {"session_id": "s1"}
        [call] = response.tool_calls
        assert call.name == "web_search"
        assert call.arguments == {"query": "weather"}
        assert response.finish_reason == "tool_calls"
        assert response.usage["total_tokens"] == 5

    @pytest.mark.asyncio
    async def test_plain_text(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**kwargs):
            captured.update(kwargs)
            return completion(content="hello")

        monkeypatch.setattr(litellm_provider, "acompletion", fake_acompletion)

        response = await LiteLLMClient("m").complete(InferenceContext(messages=[{"role": "user", "content": "hi"}]), "s")

        assert response.content == "hello"
        assert not response.has_tool_calls
        assert "tools" not in captured
        assert "api_key" not in captured


class TestLiteLLMImageProvider:
    @pytest.mark.asyncio
    async def test_generated_images_are_stored(self, monkeypatch, file_store, auth_store):
        auth_store.set_api_key("painter", "sk-img")
        captured = {}

        async def fake_generation(**kwargs):
            captured.update(kwargs)
            return SimpleNamespace(data=[
                SimpleNamespace(b64_json=base64.b64encode(b"\x89PNG1").decode(), url=None),
                SimpleNamespace(b64_json=None, url=None),
            ])

        monkeypatch.setattr(litellm_provider, "aimage_generation", fake_generation)
        provider = LiteLLMImageProvider("painter", size="512x512")

        result = await provider.generate(
            ImageGenerationRequest(prompt="a fox", count=2),
            ImageGenerationContext(file_store=file_store, auth=auth_store, logger=logger),
        )

        assert captured["n"] == 2
        assert captured["size"] == "512x512"
        assert captured["api_key"] == "sk-img"
        [file] = result.files
        assert file.name == "painter-1.png"
        assert file_store.get(file.id).source == "painter"

    @pytest.mark.asyncio
    async def test_missing_key(self, file_store, auth_store):
        with pytest.raises(ValueError, match="Missing apiKey"):
            await LiteLLMImageProvider("painter").generate(
                ImageGenerationRequest(prompt="x"),
                ImageGenerationContext(file_store=file_store, auth=auth_store, logger=logger),
            )


class TestBraveSearchTool:
    """Test the search tool against a mocked Brave API."""

    def context(self, file_store, auth_store):
        return ToolExecutionContext(
            connector_registry=None,
            file_store=file_store,
            auth=auth_store,
            logger=logger,
            session=Session(id="s1", storage_id="log-1"),
            source="chat",
            message_context=MessageContext(channel_id="chat-1"),
        )

    def mock_api(self, monkeypatch, handler):
        real_client = httpx.AsyncClient
        monkeypatch.setattr(
            brave_search.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )

    @pytest.mark.asyncio
    async def test_results_are_numbered(self, monkeypatch, file_store, auth_store):
        auth_store.set_api_key("search", "brave-key")
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"web": {"results": [
                {"title": "Weather", "url": "https://example.com/w", "description": "Sunny"},
                {"url": "https://example.com/x"},
            ]}})

        self.mock_api(monkeypatch, handler)
        tool = brave_search.BraveSearchTool("web_search", "search")

        output = await tool.execute(
            tool.validate_params({"query": "weather", "count": 3, "safeSearch": False}),
            self.context(file_store, auth_store),
        )

        assert output.text.startswith("1. Weather\nhttps://example.com/w\nSunny")
        assert "2. Untitled" in output.text
        assert output.details == {"count": 2}
        [request] = requests
        assert request.headers["X-Subscription-Token"] == "brave-key"
        assert request.url.params["q"] == "weather"
        assert request.url.params["safesearch"] == "off"

    @pytest.mark.asyncio
    async def test_no_results(self, monkeypatch, file_store, auth_store):
        auth_store.set_api_key("search", "k")
        self.mock_api(monkeypatch, lambda request: httpx.Response(200, json={}))
        tool = brave_search.BraveSearchTool("web_search", "search")

        output = await tool.execute(tool.validate_params({"query": "nothing"}), self.context(file_store, auth_store))

        assert output.text == "No results found."

    @pytest.mark.asyncio
    async def test_http_error(self, monkeypatch, file_store, auth_store):
        auth_store.set_api_key("search", "k")
        self.mock_api(monkeypatch, lambda request: httpx.Response(429))
        tool = brave_search.BraveSearchTool("web_search", "search")

        with pytest.raises(RuntimeError, match="429"):
            await tool.execute(tool.validate_params({"query": "x"}), self.context(file_store, auth_store))

    @pytest.mark.asyncio
    async def test_missing_key(self, file_store, auth_store):
        tool = brave_search.BraveSearchTool("web_search", "search")

        with pytest.raises(RuntimeError, match="Missing brave-search apiKey"):
            await tool.execute(tool.validate_params({"query": "x"}), self.context(file_store, auth_store))

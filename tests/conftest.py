"""Shared fakes for nanoscout tests."""

import inspect
from typing import Any, Callable

import pytest

from nanoscout.config.auth import AuthStore
from nanoscout.connectors.base import Connector, ConnectorMessage, FileReference, MessageContext
from nanoscout.files.store import FileStore
from nanoscout.plugins.base import PluginApi, PluginInstance, define_plugin
from nanoscout.plugins.catalog import PluginDescriptor
from nanoscout.providers.base import (
    InferenceClient,
    InferenceContext,
    InferenceProvider,
    InferenceProviderOptions,
    LLMResponse,
    ToolCallRequest,
)
from pydantic import BaseModel


class FakeConnector(Connector):
    """In-memory connector that records everything sent through it."""

    def __init__(self):
        self.handlers = []
        self.sent: list[tuple[str, ConnectorMessage]] = []
        self.shutdown_reasons: list[str | None] = []
        self.typing: list[str] = []
        self.typing_stopped = 0

    def on_message(self, handler):
        self.handlers.append(handler)

        def unsubscribe():
            if handler in self.handlers:
                self.handlers.remove(handler)

        return unsubscribe

    async def send_message(self, target_id: str, message: ConnectorMessage) -> None:
        self.sent.append((target_id, message))

    async def shutdown(self, reason: str | None = None) -> None:
        self.shutdown_reasons.append(reason)

    def start_typing(self, target_id: str):
        self.typing.append(target_id)

        def stop():
            self.typing_stopped += 1

        return stop

    async def deliver(
        self,
        text: str | None,
        channel_id: str = "chat-1",
        user_id: str | None = "user-1",
        files: list[FileReference] | None = None,
    ) -> None:
        message = ConnectorMessage(text=text, files=files or [])
        context = MessageContext(channel_id=channel_id, user_id=user_id)
        for handler in list(self.handlers):
            result = handler(message, context)
            if inspect.isawaitable(result):
                await result

    @property
    def texts(self) -> list[str | None]:
        return [message.text for _, message in self.sent]


class FakeClient(InferenceClient):
    """Inference client answering from a script (a list or a callable)."""

    def __init__(self, script: list[LLMResponse] | Callable[[InferenceContext], LLMResponse], model_id: str = "fake-model"):
        self.model_id = model_id
        self.script = script
        self.calls: list[list[dict[str, Any]]] = []

    async def complete(self, context: InferenceContext, session_id: str) -> LLMResponse:
        self.calls.append(context.request_messages())
        if callable(self.script):
            return self.script(context)
        if isinstance(self.script, list) and self.script:
            return self.script.pop(0)
        return LLMResponse(content="done")


class FailingClient(InferenceClient):
    model_id = "broken-model"

    def __init__(self, error: Exception | None = None):
        self.error = error or RuntimeError("upstream exploded")
        self.calls = 0

    async def complete(self, context: InferenceContext, session_id: str) -> LLMResponse:
        self.calls += 1
        raise self.error


class FakeProvider(InferenceProvider):
    """Provider handing out a fixed client, or failing to build one."""

    def __init__(self, id: str, client: InferenceClient | None = None, build_error: Exception | None = None):
        self.id = id
        self.label = id.title()
        self.client = client
        self.build_error = build_error
        self.builds: list[InferenceProviderOptions] = []

    async def create_client(self, options: InferenceProviderOptions) -> InferenceClient:
        self.builds.append(options)
        if self.build_error:
            raise self.build_error
        return self.client


def text_reply(text: str) -> LLMResponse:
    return LLMResponse(content=text)


def tool_reply(name: str, arguments: dict[str, Any] | None = None, call_id: str = "call-1") -> LLMResponse:
    return LLMResponse(
        content=None,
        tool_calls=[ToolCallRequest(id=call_id, name=name, arguments=arguments or {})],
        finish_reason="tool_calls",
    )


class NoSettings(BaseModel):
    pass


def fake_plugin_catalog(
    connector: FakeConnector | None = None,
    provider: InferenceProvider | None = None,
) -> dict[str, PluginDescriptor]:
    """Catalog with one ``fake`` plugin registering the given capabilities."""

    class FakePlugin(PluginInstance):
        def __init__(self, api: PluginApi):
            self.api = api

        async def load(self) -> None:
            if connector is not None:
                self.api.registrar.register_connector(self.api.instance_id, connector)
            if provider is not None:
                self.api.registrar.register_inference_provider(provider)

    definition = define_plugin(settings_schema=NoSettings, create=FakePlugin)
    return {
        "fake": PluginDescriptor(
            id="fake",
            name="Fake",
            description="Test plugin",
            entry=lambda: definition,
        ),
    }


@pytest.fixture
def file_store(tmp_path):
    return FileStore(tmp_path / "files")


@pytest.fixture
def auth_store(tmp_path):
    return AuthStore(tmp_path / "auth.json")


@pytest.fixture
def connector():
    return FakeConnector()

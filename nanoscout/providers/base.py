"""Base inference provider interface."""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from loguru import Logger

    from nanoscout.config.auth import AuthStore


@dataclass
class ToolCallRequest:
    """A tool call request from the LLM."""
    id: str
    name: str
    arguments: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": "function",
            "function": {"name": self.name, "arguments": json.dumps(self.arguments)},
        }


@dataclass
class LLMResponse:
    """Response from an inference client."""
    content: str | None
    tool_calls: list[ToolCallRequest] = field(default_factory=list)
    finish_reason: str = "stop"
    usage: dict[str, int] = field(default_factory=dict)
    reasoning_content: str | None = None

    @property
    def has_tool_calls(self) -> bool:
        """Check if response contains tool calls."""
        return len(self.tool_calls) > 0

    def to_message(self) -> dict[str, Any]:
        """Render as an assistant message for the conversation history."""
        message: dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        return message


@dataclass
class InferenceContext:
    """One completion request: the conversation plus the tools on offer."""
    messages: list[dict[str, Any]]
    tools: list[dict[str, Any]] = field(default_factory=list)
    system_prompt: str | None = None

    def request_messages(self) -> list[dict[str, Any]]:
        """Messages as sent to the model, with the system prompt first."""
        if not self.system_prompt:
            return list(self.messages)
        return [{"role": "system", "content": self.system_prompt}, *self.messages]


@dataclass
class InferenceResult:
    """Successful completion and which provider produced it."""
    response: LLMResponse
    provider_id: str
    model_id: str


@dataclass
class InferenceProviderOptions:
    """Everything a provider gets when asked to build a client."""
    provider_id: str
    auth: "AuthStore"
    logger: "Logger"
    model: str | None = None
    config: dict[str, Any] = field(default_factory=dict)


class InferenceClient(ABC):
    """A ready-to-use client bound to one model."""

    model_id: str

    @abstractmethod
    async def complete(self, context: InferenceContext, session_id: str) -> LLMResponse:
        """
        Run one completion.

        Args:
            context: Conversation, tools and system prompt.
            session_id: Conversation id, for provider-side tracing.

        Returns:
            LLMResponse with content and/or tool calls.
        """


class InferenceProvider(ABC):
    """
    Abstract base class for inference providers.

    A provider is registered by a plugin and turned into a client per
    request. ``create_client`` may fail (e.g. missing credentials); the
    router treats that as a reason to try the next provider.
    """

    id: str
    label: str

    @abstractmethod
    async def create_client(self, options: InferenceProviderOptions) -> InferenceClient:
        pass

"""Base class for agent tools."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import BaseModel, ConfigDict

from nanoscout.connectors.base import FileReference, MessageContext

if TYPE_CHECKING:
    from loguru import Logger

    from nanoscout.config.auth import AuthStore
    from nanoscout.config.schema import AssistantConfig
    from nanoscout.connectors.registry import ConnectorRegistry
    from nanoscout.files.store import FileStore
    from nanoscout.session.types import Session


class ToolArgs(BaseModel):
    """Base for tool argument models. Unknown arguments are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


@dataclass
class ToolExecutionContext:
    """What a tool can reach while it runs."""
    connector_registry: "ConnectorRegistry | None"
    file_store: "FileStore"
    auth: "AuthStore"
    logger: "Logger"
    session: "Session"
    source: str
    message_context: MessageContext
    assistant: "AssistantConfig | None" = None


@dataclass
class ToolOutput:
    """Successful tool output."""
    text: str
    files: list[FileReference] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)


@dataclass
class ToolExecutionResult:
    """Tool result message for the conversation plus any produced files."""
    message: dict[str, Any]
    files: list[FileReference] = field(default_factory=list)

    @property
    def is_error(self) -> bool:
        return bool(self.message.get("is_error"))

    @classmethod
    def success(cls, call_id: str, name: str, output: ToolOutput) -> "ToolExecutionResult":
        message = {
            "role": "tool",
            "tool_call_id": call_id,
            "name": name,
            "content": output.text,
            "is_error": False,
        }
        if output.details:
            message["details"] = output.details
        return cls(message=message, files=list(output.files))

    @classmethod
    def error(cls, call_id: str, name: str, text: str) -> "ToolExecutionResult":
        return cls(message={
            "role": "tool",
            "tool_call_id": call_id,
            "name": name,
            "content": text,
            "is_error": True,
        })


class Tool(ABC):
    """
    Abstract base class for agent tools.

    Tools are capabilities the model can call mid-conversation. Arguments
    are declared as a pydantic model in ``Args``; the JSON schema sent to
    the model is derived from it, and incoming arguments are validated
    against it before ``execute`` runs.
    """

    Args: ClassVar[type[ToolArgs]] = ToolArgs

    @property
    @abstractmethod
    def name(self) -> str:
        """Tool name used in function calls."""

    @property
    @abstractmethod
    def description(self) -> str:
        """Description of what the tool does."""

    @property
    def parameters(self) -> dict[str, Any]:
        """JSON Schema for tool parameters."""
        schema = self.Args.model_json_schema()
        schema.pop("title", None)
        return schema

    def validate_params(self, params: dict[str, Any]) -> ToolArgs:
        """Validate raw arguments. Raises ``pydantic.ValidationError``."""
        return self.Args.model_validate(params)

    def to_schema(self) -> dict[str, Any]:
        """Convert tool to OpenAI function schema format."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }

    @abstractmethod
    async def execute(self, args: Any, context: ToolExecutionContext) -> ToolOutput | str:
        """
        Execute the tool.

        Args:
            args: Validated instance of ``Args``.
            context: Session, connector and storage access for this call.

        Returns:
            Text or a ``ToolOutput`` with files.
        """

"""Image generation provider interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Literal

from nanoscout.connectors.base import FileReference

if TYPE_CHECKING:
    from loguru import Logger

    from nanoscout.config.auth import AuthStore
    from nanoscout.files.store import FileStore


@dataclass
class ImageGenerationRequest:
    prompt: str
    size: str | None = None
    count: int = 1
    format: Literal["b64_json", "url"] = "b64_json"
    model: str | None = None


@dataclass
class ImageGenerationResult:
    files: list[FileReference] = field(default_factory=list)


@dataclass
class ImageGenerationContext:
    file_store: "FileStore"
    auth: "AuthStore"
    logger: "Logger"


class ImageProvider(ABC):
    """Generates images and stores them in the file store."""

    id: str
    label: str

    @abstractmethod
    async def generate(
        self,
        request: ImageGenerationRequest,
        context: ImageGenerationContext,
    ) -> ImageGenerationResult:
        pass

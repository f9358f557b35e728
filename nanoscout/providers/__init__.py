"""Inference and image providers."""

from nanoscout.providers.base import (
    InferenceClient,
    InferenceContext,
    InferenceProvider,
    InferenceProviderOptions,
    InferenceResult,
    LLMResponse,
    ToolCallRequest,
)
from nanoscout.providers.images import ImageGenerationRequest, ImageGenerationResult, ImageProvider
from nanoscout.providers.registry import ImageRegistry, InferenceRegistry
from nanoscout.providers.router import InferenceObserver, InferenceRouter

__all__ = [
    "ImageGenerationRequest",
    "ImageGenerationResult",
    "ImageProvider",
    "ImageRegistry",
    "InferenceClient",
    "InferenceContext",
    "InferenceObserver",
    "InferenceProvider",
    "InferenceProviderOptions",
    "InferenceRegistry",
    "InferenceResult",
    "InferenceRouter",
    "LLMResponse",
    "ToolCallRequest",
]

"""LiteLLM-backed inference and image providers."""

import base64
from typing import Any

import httpx
import json_repair
import litellm
from litellm import acompletion, aimage_generation

from nanoscout.providers.base import (
    InferenceClient,
    InferenceContext,
    InferenceProvider,
    InferenceProviderOptions,
    LLMResponse,
    ToolCallRequest,
)
from nanoscout.providers.images import (
    ImageGenerationContext,
    ImageGenerationRequest,
    ImageGenerationResult,
    ImageProvider,
)

DEFAULT_MODEL = "anthropic/claude-sonnet-4-5"
DEFAULT_IMAGE_MODEL = "gpt-image-1"

# Keys LiteLLM forwards to providers; everything else in a stored message is ours.
_MESSAGE_KEYS = {"role", "content", "tool_calls", "tool_call_id", "name"}

# Disable LiteLLM logging noise
litellm.suppress_debug_info = True
# Drop unsupported parameters for providers (e.g., gpt-5 rejects some params)
litellm.drop_params = True


def _resolve_api_key(options_config: dict[str, Any], auth, instance_id: str) -> str | None:
    return options_config.get("apiKey") or auth.get_api_key(instance_id)


class LiteLLMClient(InferenceClient):
    """
    Inference client using LiteLLM for multi-provider support.

    Supports OpenRouter, Anthropic, OpenAI, Gemini and every other backend
    LiteLLM knows, selected by the model prefix.
    """

    def __init__(
        self,
        model: str,
        api_key: str | None = None,
        api_base: str | None = None,
        extra_headers: dict[str, str] | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
    ):
        self.model_id = model
        self.api_key = api_key
        self.api_base = api_base
        self.extra_headers = extra_headers or {}
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def complete(self, context: InferenceContext, session_id: str) -> LLMResponse:
        kwargs: dict[str, Any] = {
            "model": self.model_id,
            "messages": [
                {k: v for k, v in message.items() if k in _MESSAGE_KEYS}
                for message in context.request_messages()
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "metadata": {"session_id": session_id},
        }

        # Pass api_key directly, more reliable than env vars alone
        if self.api_key:
            kwargs["api_key"] = self.api_key
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if self.extra_headers:
            kwargs["extra_headers"] = self.extra_headers

        if context.tools:
            kwargs["tools"] = context.tools
            kwargs["tool_choice"] = "auto"

        response = await acompletion(**kwargs)
        return self._parse_response(response)

    def _parse_response(self, response: Any) -> LLMResponse:
        """Parse LiteLLM response into our standard format."""
        choice = response.choices[0]
        message = choice.message

        tool_calls = []
        if hasattr(message, "tool_calls") and message.tool_calls:
            for tc in message.tool_calls:
                # Parse arguments from JSON string if needed
                args = tc.function.arguments
                if isinstance(args, str):
                    args = json_repair.loads(args) if args else {}
                if not isinstance(args, dict):
                    args = {}

                tool_calls.append(ToolCallRequest(
                    id=tc.id,
                    name=tc.function.name,
                    arguments=args,
                ))

        usage = {}
        if hasattr(response, "usage") and response.usage:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }

        return LLMResponse(
            content=message.content,
            tool_calls=tool_calls,
            finish_reason=choice.finish_reason or "stop",
            usage=usage,
            reasoning_content=getattr(message, "reasoning_content", None),
        )


class LiteLLMProvider(InferenceProvider):
    """
    Builds ``LiteLLMClient`` instances for one configured plugin instance.

    The API key comes from the provider options or the auth store. A
    provider without a key and without a custom ``apiBase`` (local gateway)
    refuses to build a client so the router can fall back.
    """

    def __init__(self, id: str, label: str | None = None, settings: dict[str, Any] | None = None):
        self.id = id
        self.label = label or id
        self.settings = settings or {}

    async def create_client(self, options: InferenceProviderOptions) -> InferenceClient:
        config = {**self.settings, **options.config}
        api_key = _resolve_api_key(config, options.auth, self.id)
        api_base = config.get("apiBase")
        if not api_key and not api_base:
            raise ValueError(f"Missing apiKey for inference provider {self.id}")

        model = options.model or config.get("model") or DEFAULT_MODEL
        options.logger.debug(f"Creating LiteLLM client for {model}")
        return LiteLLMClient(
            model=model,
            api_key=api_key,
            api_base=api_base,
            extra_headers=config.get("extraHeaders"),
            max_tokens=int(config.get("maxTokens", 4096)),
            temperature=float(config.get("temperature", 0.7)),
        )


class LiteLLMImageProvider(ImageProvider):
    """Image generation through ``litellm.aimage_generation``."""

    def __init__(
        self,
        id: str,
        model: str | None = None,
        size: str | None = None,
        quality: str | None = None,
        api_base: str | None = None,
    ):
        self.id = id
        self.label = id
        self.model = model
        self.size = size
        self.quality = quality
        self.api_base = api_base

    async def generate(
        self,
        request: ImageGenerationRequest,
        context: ImageGenerationContext,
    ) -> ImageGenerationResult:
        api_key = context.auth.get_api_key(self.id)
        if not api_key:
            raise ValueError(f"Missing apiKey for image provider {self.id}")

        kwargs: dict[str, Any] = {
            "prompt": request.prompt,
            "model": self.model or request.model or DEFAULT_IMAGE_MODEL,
            "n": request.count,
            "size": request.size or self.size or "1024x1024",
            "api_key": api_key,
        }
        if self.quality:
            kwargs["quality"] = self.quality
        if self.api_base:
            kwargs["api_base"] = self.api_base

        response = await aimage_generation(**kwargs)

        files = []
        for index, item in enumerate(response.data or [], start=1):
            data = await self._image_bytes(item)
            if data is None:
                continue
            stored = await context.file_store.save_bytes(
                data,
                f"{self.id}-{index}.png",
                mime_type="image/png",
                source=self.id,
            )
            files.append(stored.to_reference())

        context.logger.info(f"Generated {len(files)} image(s) with {kwargs['model']}")
        return ImageGenerationResult(files=files)

    @staticmethod
    async def _image_bytes(item: Any) -> bytes | None:
        b64 = getattr(item, "b64_json", None)
        if b64:
            return base64.b64decode(b64)
        url = getattr(item, "url", None)
        if not url:
            return None
        async with httpx.AsyncClient() as client:
            response = await client.get(url, timeout=60.0)
            response.raise_for_status()
            return response.content

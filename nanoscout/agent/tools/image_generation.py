"""Tool for generating images through a registered image provider."""

from pydantic import Field

from nanoscout.agent.tools.base import Tool, ToolArgs, ToolExecutionContext, ToolOutput
from nanoscout.providers.images import ImageGenerationContext, ImageGenerationRequest
from nanoscout.providers.registry import ImageRegistry


class GenerateImageArgs(ToolArgs):
    prompt: str = Field(min_length=1, description="What to draw")
    provider: str | None = Field(default=None, min_length=1, description="Image provider id")
    size: str | None = Field(default=None, min_length=1, description="e.g. 1024x1024")
    count: int | None = Field(default=None, ge=1, le=4)
    model: str | None = Field(default=None, min_length=1)


class GenerateImageTool(Tool):
    """Generates images and returns them as files attached to the reply."""

    Args = GenerateImageArgs

    def __init__(self, image_registry: ImageRegistry):
        self._images = image_registry

    @property
    def name(self) -> str:
        return "generate_image"

    @property
    def description(self) -> str:
        return "Generate one or more images using the configured image provider."

    async def execute(self, args: GenerateImageArgs, context: ToolExecutionContext) -> ToolOutput:
        providers = self._images.list()
        if not providers:
            raise RuntimeError("No image generation providers available")

        provider_id = args.provider or (providers[0].id if len(providers) == 1 else None)
        if provider_id is None:
            raise RuntimeError("Multiple image providers available; specify provider")
        provider = self._images.get(provider_id)
        if provider is None:
            raise RuntimeError(f"Unknown image provider: {provider_id}")

        result = await provider.generate(
            ImageGenerationRequest(
                prompt=args.prompt,
                size=args.size,
                count=args.count or 1,
                model=args.model,
            ),
            ImageGenerationContext(
                file_store=context.file_store,
                auth=context.auth,
                logger=context.logger,
            ),
        )

        return ToolOutput(
            text=f"Generated {len(result.files)} image(s) with {provider_id}.",
            files=result.files,
            details={
                "provider": provider_id,
                "files": [
                    {"id": f.id, "name": f.name, "mimeType": f.mime_type, "size": f.size}
                    for f in result.files
                ],
            },
        )

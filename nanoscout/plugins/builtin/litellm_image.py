"""LiteLLM image generation plugin."""

from typing import Literal

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from nanoscout.plugins.base import PluginApi, PluginInstance, PluginOnboardingApi, define_plugin
from nanoscout.providers.litellm_provider import LiteLLMImageProvider


class ImageSettings(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    model: str | None = None
    size: str | None = None
    quality: Literal["standard", "hd"] | None = None
    api_base: str | None = None


class LiteLLMImagePlugin(PluginInstance):
    def __init__(self, api: PluginApi):
        self.api = api
        settings: ImageSettings = api.settings
        self.provider = LiteLLMImageProvider(
            id=api.instance_id,
            model=settings.model,
            size=settings.size,
            quality=settings.quality,
            api_base=settings.api_base,
        )

    async def load(self) -> None:
        self.api.registrar.register_image_provider(self.provider)

    async def unload(self) -> None:
        self.api.registrar.unregister_image_provider(self.provider.id)


async def onboarding(api: PluginOnboardingApi) -> dict | None:
    api_key = api.prompt("Image provider API key")
    if not api_key:
        return None
    api.auth.set_api_key(api.instance_id, api_key)
    return {}


plugin = define_plugin(
    settings_schema=ImageSettings,
    create=LiteLLMImagePlugin,
    onboarding=onboarding,
)

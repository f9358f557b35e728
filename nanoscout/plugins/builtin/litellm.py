"""LiteLLM inference provider plugin."""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from nanoscout.plugins.base import PluginApi, PluginInstance, PluginOnboardingApi, define_plugin
from nanoscout.providers.litellm_provider import LiteLLMProvider


class LiteLLMSettings(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    model: str | None = None
    label: str | None = None
    api_base: str | None = None
    extra_headers: dict[str, str] | None = None
    max_tokens: int | None = None
    temperature: float | None = None


class LiteLLMPlugin(PluginInstance):
    def __init__(self, api: PluginApi):
        self.api = api
        settings: LiteLLMSettings = api.settings
        self.provider = LiteLLMProvider(
            id=api.instance_id,
            label=settings.label,
            settings=settings.model_dump(by_alias=True, exclude_none=True, exclude={"label"}),
        )

    async def load(self) -> None:
        self.api.registrar.register_inference_provider(self.provider)

    async def unload(self) -> None:
        self.api.registrar.unregister_inference_provider(self.provider.id)


async def onboarding(api: PluginOnboardingApi) -> dict | None:
    api_key = api.prompt("API key (leave empty for a local gateway)")
    if api_key:
        api.auth.set_api_key(api.instance_id, api_key)
    model = api.prompt("Model (e.g. anthropic/claude-sonnet-4-5)")
    return {"model": model} if model else {}


plugin = define_plugin(
    settings_schema=LiteLLMSettings,
    create=LiteLLMPlugin,
    onboarding=onboarding,
)

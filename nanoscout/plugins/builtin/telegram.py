"""Telegram connector plugin."""

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from nanoscout.connectors.telegram import RetryPolicy, TelegramConnector
from nanoscout.plugins.base import PluginApi, PluginInstance, PluginOnboardingApi, define_plugin


class _Settings(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class RetrySettings(_Settings):
    min_delay_ms: float = 1000
    max_delay_ms: float = 30000
    factor: float = 2.0
    jitter: float = 0.2


class TelegramSettings(_Settings):
    polling: bool = True
    clear_webhook: bool = True
    state_path: str | None = None
    allow_from: list[str] = Field(default_factory=list)
    retry: RetrySettings = Field(default_factory=RetrySettings)


class TelegramPlugin(PluginInstance):
    def __init__(self, api: PluginApi):
        self.api = api
        self.connector_id = api.instance_id

    async def load(self) -> None:
        token = self.api.auth.get_token(self.connector_id)
        if not token:
            raise ValueError("Missing telegram token in auth store")
        if self.api.mode == "validate":
            return

        settings: TelegramSettings = self.api.settings
        state_path = Path(settings.state_path) if settings.state_path else self.api.data_dir / "telegram-offset.json"

        async def on_fatal(reason: str, error: Exception | None) -> None:
            self.api.logger.warning(f"Telegram connector fatal: {reason}")
            await self.api.registrar.report_connector_fatal(self.connector_id, reason, error)

        connector = TelegramConnector(
            token=token,
            file_store=self.api.file_store,
            polling=settings.polling,
            clear_webhook=settings.clear_webhook,
            state_path=state_path,
            retry=RetryPolicy(
                min_delay_ms=settings.retry.min_delay_ms,
                max_delay_ms=settings.retry.max_delay_ms,
                factor=settings.retry.factor,
                jitter=settings.retry.jitter,
            ),
            on_fatal=on_fatal,
            allow_from=settings.allow_from,
        )
        result = self.api.registrar.register_connector(self.connector_id, connector)
        if result.status != "loaded":
            self.api.logger.warning(f"Telegram connector {self.connector_id} not started: {result.status}")
            await connector.shutdown(result.status)
            return
        await connector.start()

    async def unload(self) -> None:
        await self.api.registrar.unregister_connector(self.connector_id)


async def onboarding(api: PluginOnboardingApi) -> dict | None:
    token = api.prompt("Telegram bot token")
    if not token:
        return None
    api.auth.set_token(api.instance_id, token)
    return {}


plugin = define_plugin(
    settings_schema=TelegramSettings,
    create=TelegramPlugin,
    onboarding=onboarding,
)

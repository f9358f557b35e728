"""Configuration schema using Pydantic."""

import math
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict


class Base(BaseModel):
    """Base model that accepts both camelCase and snake_case keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PluginInstanceConfig(Base):
    """One configured plugin instance.

    ``settings`` is opaque here; the plugin validates it against its own schema
    when the instance is loaded.
    """
    instance_id: str
    plugin_id: str
    enabled: bool = True
    settings: dict[str, Any] = Field(default_factory=dict)


class InferenceProviderConfig(Base):
    """Inference provider entry. List order defines fallback precedence."""
    id: str
    model: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)


class InferenceConfig(Base):
    """Inference routing configuration."""
    providers: list[InferenceProviderConfig] = Field(default_factory=list)


class CronTaskConfig(Base):
    """A scheduled task.

    Exactly one of ``message`` (injected as a synthetic connector message) or
    ``action`` (looked up in the scheduler's action table) drives a dispatch.
    """
    id: str | None = None
    every_ms: float
    message: str | None = None
    channel_id: str | None = None
    session_id: str | None = None
    user_id: str | None = None
    source: str | None = None
    enabled: bool = True
    run_on_start: bool = False
    once: bool = False
    action: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)

    @property
    def has_valid_interval(self) -> bool:
        return math.isfinite(self.every_ms) and self.every_ms > 0


class CronConfig(Base):
    """Cron scheduler configuration."""
    tasks: list[CronTaskConfig] = Field(default_factory=list)


class MemoryConfig(Base):
    """Cross-session keyword memory."""
    enabled: bool = True
    max_entries: int | None = Field(default=None, ge=1)


class AssistantConfig(Base):
    """Assistant persona settings."""
    name: str = "nanoscout"
    system_prompt: str = ""


class EngineConfig(Base):
    """Engine runtime configuration."""
    data_dir: str = "~/.nanoscout"
    socket_path: str | None = None  # Used by façade tooling only


class LoggingConfig(Base):
    """Logging configuration."""
    level: str = "INFO"
    file: str | None = None
    verbose: bool = False

    @field_validator("level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.upper()


class Settings(BaseSettings):
    """Root configuration for nanoscout.

    Treated as an immutable value: updates build a new instance and the engine
    swaps its reference wholesale.
    """
    engine: EngineConfig = Field(default_factory=EngineConfig)
    assistant: AssistantConfig = Field(default_factory=AssistantConfig)
    plugins: list[PluginInstanceConfig] = Field(default_factory=list)
    inference: InferenceConfig = Field(default_factory=InferenceConfig)
    cron: CronConfig = Field(default_factory=CronConfig)
    memory: MemoryConfig = Field(default_factory=MemoryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def data_path(self) -> Path:
        """Get expanded data directory path."""
        return Path(self.engine.data_dir).expanduser()

    def enabled_plugins(self) -> list[PluginInstanceConfig]:
        """Plugin instances that should be loaded."""
        return [plugin for plugin in self.plugins if plugin.enabled]

    def inference_providers(self) -> list[InferenceProviderConfig]:
        """Ordered inference provider list."""
        return list(self.inference.providers)

    model_config = SettingsConfigDict(
        env_prefix="NANOSCOUT_",
        env_nested_delimiter="__",
        alias_generator=to_camel,
        populate_by_name=True,
    )

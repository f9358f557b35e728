"""Plugin module contract."""

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Literal, Optional

from pydantic import BaseModel

from nanoscout.bus.events import PluginEventQueue, PluginEventSource

if TYPE_CHECKING:
    from loguru import Logger

    from nanoscout.bus.events import EngineEventBus
    from nanoscout.config.auth import AuthStore
    from nanoscout.config.schema import PluginInstanceConfig, Settings
    from nanoscout.files.store import FileStore
    from nanoscout.plugins.registry import PluginRegistrar

PluginMode = Literal["runtime", "validate"]


class PluginInstance:
    """A created plugin. Override ``load``/``unload`` as needed."""

    async def load(self) -> None:
        pass

    async def unload(self) -> None:
        pass


class PluginEvents:
    """Event emitter scoped to one plugin instance."""

    def __init__(self, queue: PluginEventQueue, source: PluginEventSource):
        self._queue = queue
        self._source = source

    def emit(self, type: str, payload: Any = None) -> None:
        self._queue.emit(self._source, type, payload)


@dataclass
class PluginApi:
    """Everything a plugin instance may touch."""
    instance: "PluginInstanceConfig"
    settings: BaseModel
    engine_settings: "Settings"
    logger: "Logger"
    auth: "AuthStore"
    data_dir: Path
    registrar: "PluginRegistrar"
    file_store: "FileStore"
    events: PluginEvents
    mode: PluginMode = "runtime"
    engine_events: Optional["EngineEventBus"] = None

    @property
    def instance_id(self) -> str:
        return self.instance.instance_id


@dataclass
class PluginOnboardingApi:
    """Handed to ``onboarding`` by setup tooling, never by the engine."""
    instance_id: str
    plugin_id: str
    auth: "AuthStore"
    prompt: Callable[[str], Optional[str]]
    note: Callable[[str], None]


@dataclass(frozen=True)
class PluginDefinition:
    """What a plugin module exports."""
    settings_schema: type[BaseModel]
    create: Callable[[PluginApi], PluginInstance | Awaitable[PluginInstance]]
    onboarding: Optional[Callable[[PluginOnboardingApi], Awaitable[Optional[dict[str, Any]]]]] = None


def define_plugin(
    settings_schema: type[BaseModel],
    create: Callable[[PluginApi], PluginInstance | Awaitable[PluginInstance]],
    onboarding: Optional[Callable[[PluginOnboardingApi], Awaitable[Optional[dict[str, Any]]]]] = None,
) -> PluginDefinition:
    return PluginDefinition(settings_schema=settings_schema, create=create, onboarding=onboarding)

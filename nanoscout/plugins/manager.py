"""Plugin manager: loads, unloads and reconciles plugin instances."""

import asyncio
import inspect
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from loguru import logger
from pydantic import BaseModel

from nanoscout.bus.events import EngineEventBus, PluginEventQueue, PluginEventSource
from nanoscout.config.schema import PluginInstanceConfig, Settings
from nanoscout.errors import PluginLoadError, PluginNotFoundError
from nanoscout.plugins.base import PluginApi, PluginDefinition, PluginEvents, PluginInstance, PluginMode
from nanoscout.plugins.catalog import PluginDescriptor
from nanoscout.plugins.registry import PluginRegistrar, PluginRegistry
from nanoscout.utils.helpers import ensure_dir

if TYPE_CHECKING:
    from nanoscout.config.auth import AuthStore
    from nanoscout.files.store import FileStore


@dataclass
class LoadedPlugin:
    definition: PluginDefinition
    instance: PluginInstance
    config: PluginInstanceConfig
    registrar: PluginRegistrar
    data_dir: Path
    settings: BaseModel


def _settings_equal(a: dict[str, Any] | None, b: dict[str, Any] | None) -> bool:
    return (a or {}) == (b or {})


class PluginManager:
    """
    Owns the set of loaded plugin instances.

    Every instance gets its own registrar and data directory
    (``<data_dir>/plugins/<instance_id>``). Loading an instance id that is
    already loaded does nothing; reconciling against settings only touches
    instances whose plugin id or settings changed.
    """

    def __init__(
        self,
        settings: Settings,
        registry: PluginRegistry,
        auth: "AuthStore",
        file_store: "FileStore",
        catalog: dict[str, PluginDescriptor],
        data_dir: Path,
        event_queue: PluginEventQueue,
        mode: PluginMode = "runtime",
        engine_events: EngineEventBus | None = None,
    ):
        self.settings = settings
        self.registry = registry
        self.auth = auth
        self.file_store = file_store
        self.catalog = catalog
        self.data_dir = Path(data_dir)
        self.event_queue = event_queue
        self.mode = mode
        self.engine_events = engine_events
        self._loaded: dict[str, LoadedPlugin] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def list_loaded(self) -> list[str]:
        return list(self._loaded)

    def list_available(self) -> list[str]:
        return list(self.catalog)

    def is_loaded(self, instance_id: str) -> bool:
        return instance_id in self._loaded

    def get_config(self, instance_id: str) -> PluginInstanceConfig | None:
        entry = self._loaded.get(instance_id)
        return entry.config if entry else None

    def update_settings(self, settings: Settings) -> None:
        self.settings = settings

    def _lock(self, instance_id: str) -> asyncio.Lock:
        return self._locks.setdefault(instance_id, asyncio.Lock())

    async def load(self, config: PluginInstanceConfig) -> None:
        """
        Load one plugin instance.

        Overlapping calls for the same instance id wait for each other, so the
        second one finds the instance loaded and returns.

        Raises:
            PluginNotFoundError: ``plugin_id`` is not in the catalog.
            pydantic.ValidationError: settings do not match the plugin schema.
            PluginLoadError: ``create`` or the ``load`` hook failed; anything
                registered before the failure has been removed again.
        """
        async with self._lock(config.instance_id):
            if config.instance_id in self._loaded:
                return
            await self._load(config)

    async def _load(self, config: PluginInstanceConfig) -> None:
        instance_id = config.instance_id

        descriptor = self.catalog.get(config.plugin_id)
        if descriptor is None:
            raise PluginNotFoundError(config.plugin_id)

        logger.info(f"Loading plugin {config.plugin_id} as {instance_id}")
        definition = descriptor.load_definition()
        settings = definition.settings_schema.model_validate(config.settings or {})

        registrar = self.registry.create_registrar(instance_id)
        data_dir = ensure_dir(self.data_dir / "plugins" / instance_id)
        api = PluginApi(
            instance=config,
            settings=settings,
            engine_settings=self.settings,
            logger=logger.bind(plugin=instance_id),
            auth=self.auth,
            data_dir=data_dir,
            registrar=registrar,
            file_store=self.file_store,
            events=PluginEvents(
                self.event_queue,
                PluginEventSource(plugin_id=config.plugin_id, instance_id=instance_id),
            ),
            mode=self.mode,
            engine_events=self.engine_events,
        )

        try:
            instance = definition.create(api)
            if inspect.isawaitable(instance):
                instance = await instance
            await instance.load()
        except Exception as e:
            await registrar.unregister_all()
            logger.error(f"Plugin {instance_id} failed to load: {e}")
            raise PluginLoadError(instance_id, str(e)) from e

        self._loaded[instance_id] = LoadedPlugin(
            definition=definition,
            instance=instance,
            config=config,
            registrar=registrar,
            data_dir=data_dir,
            settings=settings,
        )
        logger.info(f"Plugin loaded: {instance_id}")
        if self.engine_events:
            self.engine_events.emit("plugin.loaded", {"instanceId": instance_id, "pluginId": config.plugin_id})

    async def unload(self, instance_id: str) -> None:
        """Run the unload hook, then remove every registration even if the hook raised."""
        async with self._lock(instance_id):
            await self._unload(instance_id)

    async def _unload(self, instance_id: str) -> None:
        entry = self._loaded.get(instance_id)
        if entry is None:
            return

        logger.info(f"Unloading plugin {instance_id} ({entry.config.plugin_id})")
        try:
            await entry.instance.unload()
        finally:
            await entry.registrar.unregister_all()
            self._loaded.pop(instance_id, None)
            logger.info(f"Plugin unloaded: {instance_id}")
            if self.engine_events:
                self.engine_events.emit(
                    "plugin.unloaded", {"instanceId": instance_id, "pluginId": entry.config.plugin_id}
                )

    async def sync_with_settings(self, settings: Settings) -> None:
        """Bring the loaded set in line with the enabled plugins in ``settings``."""
        self.settings = settings
        desired = settings.enabled_plugins()
        desired_by_id = {plugin.instance_id: plugin for plugin in desired}

        for instance_id, entry in list(self._loaded.items()):
            target = desired_by_id.get(instance_id)
            if target is None:
                logger.info(f"Unloading plugin {instance_id} (disabled)")
                await self.unload(instance_id)
            elif target.plugin_id != entry.config.plugin_id or not _settings_equal(
                target.settings, entry.config.settings
            ):
                logger.info(f"Reloading plugin {instance_id} (settings changed)")
                await self.unload(instance_id)

        for plugin in desired:
            entry = self._loaded.get(plugin.instance_id)
            if entry is not None:
                entry.config = plugin
                continue
            logger.info(f"Loading plugin {plugin.instance_id} (settings sync)")
            await self.load(plugin)

    async def load_enabled(self, settings: Settings, strict: bool = True) -> None:
        """Load every enabled instance. With ``strict=False`` failures are logged and skipped."""
        self.settings = settings
        for plugin in settings.enabled_plugins():
            try:
                await self.load(plugin)
            except Exception as e:
                if strict:
                    raise
                logger.error(f"Skipping plugin {plugin.instance_id}: {e}")

    async def unload_all(self) -> None:
        """Unload everything; a failing unload hook does not stop the rest."""
        for instance_id in list(self._loaded):
            try:
                await self.unload(instance_id)
            except Exception as e:
                logger.error(f"Plugin {instance_id} unload hook failed: {e}")

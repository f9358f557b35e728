"""Engine: the composition root that wires nanoscout together."""

import asyncio
from pathlib import Path
from typing import Any, AsyncIterator

from loguru import logger

from nanoscout.agent.context import build_user_message, extract_assistant_text, normalize_session_state
from nanoscout.agent.loop import AgentLoop
from nanoscout.agent.tools.base import ToolExecutionContext, ToolExecutionResult
from nanoscout.agent.tools.cron import AddCronTool
from nanoscout.agent.tools.image_generation import GenerateImageTool
from nanoscout.agent.tools.memory import MemorySearchTool
from nanoscout.agent.tools.registry import ToolResolver
from nanoscout.bus.events import EngineEvent, EngineEventBus, PluginEvent, PluginEventQueue, PluginEventSource
from nanoscout.bus.queue import PluginEventEngine
from nanoscout.config.auth import AuthStore
from nanoscout.config.schema import CronTaskConfig, Settings
from nanoscout.connectors.base import Connector, ConnectorMessage, FileReference, MessageContext
from nanoscout.connectors.registry import ConnectorRegistry
from nanoscout.cron.service import CronScheduler
from nanoscout.errors import NoInferenceProviderError
from nanoscout.files.store import FileStore
from nanoscout.memory.store import MemoryRole, MemoryStore
from nanoscout.plugins.catalog import PluginDescriptor, build_plugin_catalog
from nanoscout.plugins.manager import PluginManager
from nanoscout.plugins.registry import PluginRegistry
from nanoscout.providers.base import LLMResponse, ToolCallRequest
from nanoscout.providers.registry import ImageRegistry, InferenceRegistry
from nanoscout.providers.router import InferenceObserver, InferenceRouter
from nanoscout.session.manager import SessionManager
from nanoscout.session.store import SessionStore
from nanoscout.session.types import Session, SessionMessage
from nanoscout.utils.ids import new_id

CORE_PLUGIN_ID = "core"

NO_PROVIDER_REPLY = "No inference provider available."
INFERENCE_FAILED_REPLY = "Inference failed."
TOOL_LIMIT_REPLY = "Tool execution limit reached."
GENERATED_FILES_REPLY = "Generated files."
INTERNAL_ERROR_REPLY = "Internal error."


def context_payload(context: MessageContext) -> dict[str, Any]:
    return {
        "channelId": context.channel_id,
        "userId": context.user_id,
        "sessionId": context.session_id,
    }


def message_payload(text: str | None, files: list[FileReference]) -> dict[str, Any]:
    payload: dict[str, Any] = {"text": text}
    if files:
        payload["files"] = [
            {"id": f.id, "name": f.name, "mimeType": f.mime_type, "size": f.size, "path": f.path}
            for f in files
        ]
    return payload


class _LoggingObserver(InferenceObserver):
    """Logs every step of a routed completion for one message."""

    def __init__(self, session_id: str, message_id: str):
        self.log = logger.bind(session_id=session_id, message_id=message_id)

    def on_attempt(self, provider_id: str, model_id: str) -> None:
        self.log.info(f"Inference started: {provider_id} ({model_id})")

    def on_fallback(self, provider_id: str, error: Exception) -> None:
        self.log.warning(f"Inference fallback past {provider_id}: {error}")

    def on_success(self, provider_id: str, model_id: str, response: LLMResponse) -> None:
        self.log.info(
            f"Inference completed: {provider_id} ({model_id}), "
            f"finish={response.finish_reason}, usage={response.usage}"
        )

    def on_failure(self, provider_id: str, error: Exception) -> None:
        self.log.warning(f"Inference failed on {provider_id}: {error}")


class Engine:
    """
    Owns every long-lived component and the message pipeline.

    A connector message travels connector -> plugin event queue ->
    session manager -> ``handle_session_message`` (agent loop, reply,
    persistence, events). Nothing here is a process-wide singleton; tests
    build as many engines as they like.
    """

    def __init__(
        self,
        settings: Settings,
        data_dir: Path | None = None,
        auth_path: Path | None = None,
        event_bus: EngineEventBus | None = None,
        catalog: dict[str, PluginDescriptor] | None = None,
    ):
        self.settings = settings
        self.data_dir = Path(data_dir) if data_dir else settings.data_path
        self.event_bus = event_bus or EngineEventBus()
        self.auth_store = AuthStore(auth_path or self.data_dir / "auth.json")
        self.file_store = FileStore(self.data_dir / "files")

        self.plugin_event_queue = PluginEventQueue()
        self.plugin_event_engine = PluginEventEngine(self.plugin_event_queue)

        self.connector_registry = ConnectorRegistry(
            on_message=self._on_connector_message,
            on_fatal=self._on_connector_fatal,
        )
        self.inference_registry = InferenceRegistry()
        self.image_registry = ImageRegistry()
        self.tool_resolver = ToolResolver()
        self.plugin_registry = PluginRegistry(
            self.connector_registry,
            self.inference_registry,
            self.image_registry,
            self.tool_resolver,
        )
        self.plugin_manager = PluginManager(
            settings=settings,
            registry=self.plugin_registry,
            auth=self.auth_store,
            file_store=self.file_store,
            catalog=catalog if catalog is not None else build_plugin_catalog(),
            data_dir=self.data_dir,
            event_queue=self.plugin_event_queue,
            engine_events=self.event_bus,
        )

        self.session_store = SessionStore(self.data_dir / "sessions")
        self.memory: MemoryStore | None = None
        if settings.memory.enabled:
            self.memory = MemoryStore(self.data_dir / "memory", max_entries=settings.memory.max_entries)
        self.session_manager = SessionManager(
            create_state=lambda: {"messages": []},
            storage_id_factory=self.session_store.create_storage_id,
            on_session_created=self._on_session_created,
            on_session_updated=self._on_session_updated,
            on_message_start=self._on_message_start,
            on_message_end=self._on_message_end,
            on_error=self._on_session_error,
        )

        self.inference_router = InferenceRouter(
            providers=settings.inference_providers(),
            registry=self.inference_registry,
            auth=self.auth_store,
        )
        self.agent_loop = AgentLoop(self.inference_router, self.tool_resolver)
        self.cron: CronScheduler | None = None

        self._background: set[asyncio.Task] = set()
        self.plugin_event_engine.register("connector.message", self._on_connector_message_event)

    # -- Lifecycle -------------------------------------------------------

    async def start(self) -> None:
        """Load plugins, restore sessions and start the scheduler."""
        if self.cron is not None:
            logger.warning("Engine already started")
            return
        logger.info(f"Engine starting (data dir {self.data_dir})")
        await self.plugin_manager.load_enabled(self.settings, strict=False)
        self.plugin_event_engine.start()

        self.cron = CronScheduler(
            tasks=self.settings.cron.tasks,
            on_message=self._on_cron_message,
            actions={"send-message": self._cron_send_message},
            on_error=self._on_cron_error,
        )

        self.tool_resolver.register_tool(
            CORE_PLUGIN_ID,
            AddCronTool(self.cron, on_task_added=self._on_cron_task_added),
        )
        self.tool_resolver.register_tool(CORE_PLUGIN_ID, GenerateImageTool(self.image_registry))
        self.tool_resolver.register_tool(CORE_PLUGIN_ID, MemorySearchTool(self.memory))

        await self.restore_sessions()

        self.cron.start()
        self.event_bus.emit("cron.started", {"tasks": self.get_cron_tasks()})
        logger.info("Engine started")

    async def shutdown(self) -> None:
        logger.info("Engine shutting down")
        await self.connector_registry.unregister_all("shutdown")
        if self.cron:
            self.cron.stop()
        self.plugin_event_engine.stop()
        await self.plugin_manager.unload_all()
        for task in list(self._background):
            task.cancel()

    # -- Public surface --------------------------------------------------

    def get_status(self) -> dict[str, Any]:
        return {
            "plugins": self.plugin_manager.list_loaded(),
            "connectors": self.connector_registry.list_status(),
            "inferenceProviders": [
                {"id": provider.id, "label": provider.label}
                for provider in self.inference_registry.list()
            ],
            "imageProviders": [
                {"id": provider.id, "label": provider.label}
                for provider in self.image_registry.list()
            ],
            "tools": self.tool_resolver.tool_names,
        }

    def get_cron_tasks(self) -> list[dict[str, Any]]:
        if self.cron is None:
            return []
        return [_task_payload(task) for task in self.cron.list_tasks()]

    def get_session_store(self) -> SessionStore:
        return self.session_store

    def get_memory_store(self) -> MemoryStore | None:
        return self.memory

    def get_plugin_manager(self) -> PluginManager:
        return self.plugin_manager

    def get_settings(self) -> Settings:
        return self.settings

    def get_auth_store(self) -> AuthStore:
        return self.auth_store

    def get_file_store(self) -> FileStore:
        return self.file_store

    def get_connector_registry(self) -> ConnectorRegistry:
        return self.connector_registry

    def get_inference_router(self) -> InferenceRouter:
        return self.inference_router

    async def execute_tool(
        self,
        name: str,
        args: dict[str, Any],
        context: MessageContext | None = None,
    ) -> ToolExecutionResult:
        """Run one tool outside any conversation (dashboard/CLI use)."""
        session_id = (context.session_id if context else None) or f"system:{name}"
        session = Session(id=session_id, storage_id=new_id(), state={"messages": []})
        message_context = context or MessageContext(channel_id=session_id, session_id=session_id)

        return await self.tool_resolver.execute(
            ToolCallRequest(id=new_id(), name=name, arguments=args),
            self._tool_context(session, "system", message_context),
        )

    async def update_settings(self, settings: Settings) -> None:
        """Swap settings wholesale and reconcile plugins and providers."""
        self.settings = settings
        await self.plugin_manager.sync_with_settings(settings)
        self.inference_router.update_providers(settings.inference_providers())

    async def stream_events(self) -> AsyncIterator[EngineEvent]:
        """
        Yield an ``init`` status snapshot, then every engine event live.

        The subscription is taken before the snapshot so nothing emitted in
        between is lost.
        """
        queue: asyncio.Queue[EngineEvent] = asyncio.Queue()
        unsubscribe = self.event_bus.on_event(queue.put_nowait)
        try:
            yield EngineEvent(
                type="init",
                payload={"status": self.get_status(), "cron": self.get_cron_tasks()},
            )
            while True:
                yield await queue.get()
        finally:
            unsubscribe()

    # -- Session restore -------------------------------------------------

    async def restore_sessions(self) -> None:
        """Rehydrate sessions from the log and answer any left mid-turn."""
        pending: list[tuple[str, str, MessageContext]] = []

        for restored in self.session_store.load_sessions():
            session = self.session_manager.restore_session(
                restored.session_id,
                restored.storage_id,
                normalize_session_state(restored.state),
                restored.created_at,
                restored.updated_at,
                source=restored.source,
                context=restored.context,
            )
            logger.info(f"Session restored: {session.id} ({restored.source})")
            if restored.last_entry_type == "incoming":
                pending.append((session.id, restored.source, restored.context))

        for session_id, source, context in pending:
            connector = self.connector_registry.get(source)
            if connector is None:
                logger.warning(f"Cannot report interrupted session {session_id}: {source} not loaded")
                continue
            try:
                await connector.send_message(context.channel_id, ConnectorMessage(text=INTERNAL_ERROR_REPLY))
            except Exception as e:
                logger.warning(f"Pending reply for session {session_id} failed: {e}")

    # -- Message pipeline ------------------------------------------------

    async def handle_session_message(self, entry: SessionMessage, session: Session, source: str) -> None:
        """Run one inbound message through inference and reply on its connector."""
        if entry.message.is_empty:
            return

        connector = self.connector_registry.get(source)
        if connector is None:
            logger.warning(f"Dropping message {entry.id}: connector {source} not loaded")
            return

        messages = session.state.setdefault("messages", [])
        messages.append(await build_user_message(entry))

        stop_typing = connector.start_typing(entry.context.channel_id)
        try:
            outcome = await self.agent_loop.run(
                messages,
                session.id,
                self._tool_context(session, source, entry.context),
                observer=_LoggingObserver(session.id, entry.id),
                system_prompt=self.settings.assistant.system_prompt,
            )
        except Exception as e:
            logger.warning(f"Inference failed for session {session.id} ({source}): {e}")
            reply = NO_PROVIDER_REPLY if isinstance(e, NoInferenceProviderError) else INFERENCE_FAILED_REPLY
            await self._send_reply(connector, session, source, entry.context, reply)
            await self._record_state(session, source)
            return
        finally:
            if stop_typing:
                stop_typing()

        text = extract_assistant_text(outcome.message) if outcome.message else None
        files = outcome.files

        if not text and not files:
            if outcome.limit_reached:
                await self._send_reply(connector, session, source, entry.context, TOOL_LIMIT_REPLY)
            await self._record_state(session, source)
            return

        reply = text or GENERATED_FILES_REPLY
        if await self._send_reply(connector, session, source, entry.context, reply, files):
            await self._remember(session, source, "assistant", reply, files)
            self.event_bus.emit("session.outgoing", {
                "sessionId": session.id,
                "source": source,
                "message": message_payload(reply, files),
                "context": context_payload(entry.context),
            })
        await self._record_state(session, source)

    async def _send_reply(
        self,
        connector: Connector,
        session: Session,
        source: str,
        context: MessageContext,
        text: str,
        files: list[FileReference] | None = None,
    ) -> bool:
        """Send and log one reply. Returns False if the connector refused it."""
        try:
            await connector.send_message(context.channel_id, ConnectorMessage(text=text, files=list(files or [])))
        except Exception as e:
            logger.warning(f"Failed to send response on {source} for session {session.id}: {e}")
            return False

        try:
            await self.session_store.record_outgoing(session, new_id(), source, context, text, files)
        except Exception as e:
            logger.warning(f"Session persistence failed for {session.id}: {e}")
        return True

    async def _record_state(self, session: Session, source: str) -> None:
        try:
            await self.session_store.record_state(session)
        except Exception as e:
            logger.warning(f"Session persistence failed for {session.id} ({source}): {e}")

    async def _remember(
        self,
        session: Session,
        source: str,
        role: MemoryRole,
        text: str | None,
        files: list[FileReference] | None = None,
    ) -> None:
        if self.memory is None:
            return
        try:
            await self.memory.record(session.id, source, role, text, files)
        except Exception as e:
            logger.warning(f"Memory write failed for session {session.id}: {e}")

    def _tool_context(self, session: Session, source: str, context: MessageContext) -> ToolExecutionContext:
        return ToolExecutionContext(
            connector_registry=self.connector_registry,
            file_store=self.file_store,
            auth=self.auth_store,
            logger=logger.bind(session_id=session.id),
            session=session,
            source=source,
            message_context=context,
            assistant=self.settings.assistant,
        )

    # -- Connector and plugin event callbacks ----------------------------

    def _on_connector_message(self, source: str, message: ConnectorMessage, context: MessageContext) -> None:
        self.plugin_event_queue.emit(
            PluginEventSource(plugin_id=source, instance_id=source),
            "connector.message",
            {"source": source, "message": message, "context": context},
        )

    async def _on_connector_message_event(self, event: PluginEvent) -> None:
        payload = event.payload
        if not payload:
            return
        source = payload["source"]
        await self.session_manager.handle_message(
            source,
            payload["message"],
            payload["context"],
            lambda session, entry: self.handle_session_message(entry, session, source),
        )

    def _on_connector_fatal(self, connector_id: str, reason: str, error: Exception | None) -> None:
        logger.warning(f"Connector {connector_id} requested shutdown: {reason} ({error})")
        # Runs on its own task: the reporting connector may be the one shutting down.
        task = asyncio.create_task(self.connector_registry.unregister(connector_id, reason))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # -- Session hooks ---------------------------------------------------

    async def _on_session_created(self, session: Session, source: str, context: MessageContext) -> None:
        logger.info(
            f"Session created: {session.id} ({source}, channel {context.channel_id}, user {context.user_id})"
        )
        try:
            await self.session_store.record_session_created(session, source, context)
        except Exception as e:
            logger.warning(f"Session persistence failed for {session.id}: {e}")
        self.event_bus.emit("session.created", {
            "sessionId": session.id,
            "source": source,
            "context": context_payload(context),
        })

    async def _on_session_updated(self, session: Session, entry: SessionMessage, source: str) -> None:
        logger.info(f"Session updated: {session.id} ({source}, message {entry.id}, pending {session.pending})")
        try:
            await self.session_store.record_incoming(session, entry, source)
        except Exception as e:
            logger.warning(f"Session persistence failed for {session.id} message {entry.id}: {e}")
        await self._remember(session, source, "user", entry.message.text, entry.message.files)
        self.event_bus.emit("session.updated", {
            "sessionId": session.id,
            "source": source,
            "messageId": entry.id,
            "entry": {
                "id": entry.id,
                "message": message_payload(entry.message.text, entry.message.files),
                "context": context_payload(entry.context),
                "receivedAt": entry.received_at.isoformat(),
            },
        })

    @staticmethod
    def _on_message_start(session: Session, entry: SessionMessage, source: str) -> None:
        logger.info(f"Session processing started: {session.id} ({source}, message {entry.id})")

    @staticmethod
    def _on_message_end(session: Session, entry: SessionMessage, source: str) -> None:
        logger.info(f"Session processing completed: {session.id} ({source}, message {entry.id})")

    @staticmethod
    def _on_session_error(error: Exception, session: Session, entry: SessionMessage) -> None:
        logger.warning(f"Session handler failed: {session.id} (message {entry.id}): {error}")

    # -- Cron ------------------------------------------------------------

    async def _on_cron_message(self, message: ConnectorMessage, context: MessageContext, task: CronTaskConfig) -> None:
        source = task.source or "cron"
        await self.session_manager.handle_message(
            source,
            message,
            context,
            lambda session, entry: self.handle_session_message(entry, session, source),
        )

    async def _cron_send_message(self, task: CronTaskConfig, context: MessageContext) -> None:
        source = task.source or "telegram"
        connector = self.connector_registry.get(source)
        if connector is None:
            logger.warning(f"Cron action skipped for {task.id}: connector {source} not loaded")
            return
        if not task.message:
            logger.warning(f"Cron action skipped for {task.id}: missing message")
            return
        try:
            await connector.send_message(context.channel_id, ConnectorMessage(text=task.message))
        except Exception as e:
            logger.warning(f"Cron message send failed for {task.id}: {e}")

    @staticmethod
    def _on_cron_error(error: Exception, task: CronTaskConfig) -> None:
        logger.warning(f"Cron task {task.id} failed: {error}")

    def _on_cron_task_added(self, task: CronTaskConfig) -> None:
        self.event_bus.emit("cron.task.added", {"task": _task_payload(task)})


def _task_payload(task: CronTaskConfig) -> dict[str, Any]:
    return task.model_dump(by_alias=True, exclude_none=True)

"""In-memory session lifecycle with per-session serialization."""

import asyncio
import inspect
from datetime import datetime
from typing import Any, Awaitable, Callable

from loguru import logger

from nanoscout.connectors.base import ConnectorMessage, MessageContext
from nanoscout.session.types import Session, SessionMessage
from nanoscout.utils.ids import new_id, session_key

SessionHandler = Callable[[Session, SessionMessage], Awaitable[None]]
Hook = Callable[..., Awaitable[None] | None]


class SessionManager:
    """
    Routes inbound messages to sessions keyed by ``(source, conversation)``.

    The conversation is ``context.session_id`` when set, else the channel
    id. Each session has its own FIFO lock: messages for one session are
    handled strictly one after another in arrival order, while different
    sessions proceed concurrently. The creation and updated hooks run on
    arrival, in arrival order, so a message waiting behind a slow handler is
    already recorded.

    Hooks are optional and may be sync or async:
    ``on_session_created(session, source, context)``,
    ``on_session_updated(session, entry, source)``,
    ``on_message_start(session, entry, source)``,
    ``on_message_end(session, entry, source)`` and
    ``on_error(error, session, entry)``.
    """

    def __init__(
        self,
        create_state: Callable[[], dict[str, Any]] = dict,
        storage_id_factory: Callable[[], str] = new_id,
        on_session_created: Hook | None = None,
        on_session_updated: Hook | None = None,
        on_message_start: Hook | None = None,
        on_message_end: Hook | None = None,
        on_error: Hook | None = None,
    ):
        self.create_state = create_state
        self.storage_id_factory = storage_id_factory
        self.on_session_created = on_session_created
        self.on_session_updated = on_session_updated
        self.on_message_start = on_message_start
        self.on_message_end = on_message_end
        self.on_error = on_error
        self._sessions: dict[str, Session] = {}
        self._keys: dict[str, str] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._intake: dict[str, asyncio.Future] = {}

    @staticmethod
    def session_key(source: str, context: MessageContext) -> str:
        return session_key(source, context.session_id or context.channel_id)

    def get_session(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def get_by_key(self, source: str, context: MessageContext) -> Session | None:
        session_id = self._keys.get(self.session_key(source, context))
        return self._sessions.get(session_id) if session_id else None

    def list_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    async def handle_message(
        self,
        source: str,
        message: ConnectorMessage,
        context: MessageContext,
        handler: SessionHandler,
    ) -> Session:
        session = self.get_by_key(source, context)
        created = session is None
        if session is None:
            preset = context.session_id
            session = Session(
                id=preset if preset and preset not in self._sessions else new_id(),
                storage_id=self.storage_id_factory(),
                state=self.create_state(),
            )
            self._register(session, self.session_key(source, context))

        entry = SessionMessage(id=new_id(), message=message, context=context)
        session.pending += 1
        lock = self._locks.setdefault(session.id, asyncio.Lock())
        previous = self._intake.get(session.id)
        recorded = asyncio.get_running_loop().create_future()
        self._intake[session.id] = recorded

        try:
            try:
                if previous is not None:
                    await asyncio.shield(previous)
                if created:
                    await self._call_hook(self.on_session_created, session, source, context)
                session.touch(entry.received_at)
                await self._call_hook(self.on_session_updated, session, entry, source)
            finally:
                recorded.set_result(None)
                if self._intake.get(session.id) is recorded:
                    del self._intake[session.id]

            async with lock:
                await self._call_hook(self.on_message_start, session, entry, source)
                try:
                    await handler(session, entry)
                except Exception as e:
                    logger.error(f"Session {session.id} handler failed: {e}")
                    await self._call_hook(self.on_error, e, session, entry)
                await self._call_hook(self.on_message_end, session, entry, source)
        finally:
            session.pending -= 1

        return session

    def restore_session(
        self,
        session_id: str,
        storage_id: str,
        state: dict[str, Any],
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
        source: str | None = None,
        context: MessageContext | None = None,
    ) -> Session:
        """Rehydrate a session from its log without running any hooks."""
        session = Session(
            id=session_id,
            storage_id=storage_id,
            state=state,
            created_at=created_at or datetime.now(),
            updated_at=updated_at or created_at or datetime.now(),
        )
        key = self.session_key(source, context) if source and context else None
        self._register(session, key)
        return session

    def _register(self, session: Session, key: str | None) -> None:
        self._sessions[session.id] = session
        if key:
            self._keys[key] = session.id

    @staticmethod
    async def _call_hook(hook: Hook | None, *args: Any) -> None:
        if hook is None:
            return
        try:
            result = hook(*args)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning(f"Session hook {getattr(hook, '__name__', hook)} failed: {e}")

"""Telegram connector using the Bot API over long polling."""

import asyncio
import inspect
import json
import random
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable

import httpx
from loguru import logger

from nanoscout.connectors.base import (
    Connector,
    ConnectorMessage,
    FileReference,
    MessageContext,
    MessageHandler,
    Unsubscribe,
)

if TYPE_CHECKING:
    from nanoscout.files.store import FileStore

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4096
TYPING_REFRESH_SECONDS = 4.0
PERSIST_DEBOUNCE_SECONDS = 0.5

FatalHandler = Callable[[str, Exception | None], Awaitable[None] | None]


class TelegramApiError(Exception):
    """Bot API call returned ``ok: false`` or a non-JSON error."""

    def __init__(self, method: str, status_code: int, description: str = ""):
        self.method = method
        self.status_code = status_code
        self.description = description
        super().__init__(f"Telegram {method} failed ({status_code}): {description}")

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff with symmetric jitter."""
    min_delay_ms: float = 1000
    max_delay_ms: float = 30000
    factor: float = 2.0
    jitter: float = 0.2

    def delay_ms(self, attempt: int) -> int:
        capped = min(self.max_delay_ms, self.min_delay_ms * self.factor ** attempt)
        spread = capped * self.jitter
        return max(0, int(capped + (random.random() * 2 - 1) * spread))


class TelegramConnector(Connector):
    """
    Telegram connector.

    Polls ``getUpdates`` in a background task, downloads photos and documents
    into the shared ``FileStore`` and persists the last seen update id so a
    restart does not replay old messages.

    A 409 conflict (another process polling the same bot) first clears the
    webhook and retries once; a second conflict in a row disables polling and
    reports ``polling_conflict`` through ``on_fatal``. A successful poll in
    between re-arms the retry.
    """

    def __init__(
        self,
        token: str,
        file_store: "FileStore",
        polling: bool = True,
        clear_webhook: bool = True,
        state_path: Path | None = None,
        retry: RetryPolicy | None = None,
        on_fatal: FatalHandler | None = None,
        allow_from: list[str] | None = None,
        poll_timeout: int = 30,
        api_base: str = TELEGRAM_API_BASE,
        client: httpx.AsyncClient | None = None,
    ):
        self.token = token
        self.file_store = file_store
        self.state_path = state_path
        self.retry = retry or RetryPolicy()
        self.on_fatal = on_fatal
        self.allow_from = allow_from or []
        self.poll_timeout = poll_timeout
        self.api_base = api_base.rstrip("/")

        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None
        self._handlers: list[MessageHandler] = []
        self._polling_enabled = polling
        self._clear_webhook_on_start = clear_webhook
        self._cleared_webhook = False
        self._conflict_retried = False
        self._last_update_id: int | None = None
        self._retry_attempt = 0
        self._shutting_down = False
        self._poll_task: asyncio.Task | None = None
        self._persist_task: asyncio.Task | None = None

    # -- Connector interface ---------------------------------------------

    def on_message(self, handler: MessageHandler) -> Unsubscribe:
        self._handlers.append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return unsubscribe

    async def send_message(self, target_id: str, message: ConnectorMessage) -> None:
        if not message.files:
            text = message.text or ""
            for start in range(0, max(len(text), 1), MAX_MESSAGE_LENGTH):
                await self._call("sendMessage", json={
                    "chat_id": target_id,
                    "text": text[start:start + MAX_MESSAGE_LENGTH],
                })
            return

        first, *rest = message.files
        await self._send_file(target_id, first, caption=message.text)
        for file in rest:
            await self._send_file(target_id, file)

    def start_typing(self, target_id: str) -> Callable[[], None] | None:
        task = asyncio.create_task(self._typing_loop(target_id))
        return task.cancel

    async def shutdown(self, reason: str | None = None) -> None:
        if self._shutting_down:
            return
        self._shutting_down = True
        logger.info(f"Telegram connector shutting down ({reason or 'shutdown'})")

        for task in (self._poll_task, self._persist_task):
            if task and not task.done():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._poll_task = None
        self._persist_task = None

        await self._persist_state()
        if self._owns_client:
            await self._client.aclose()

    # -- Lifecycle -------------------------------------------------------

    async def start(self) -> None:
        """Load the persisted offset and start polling in the background."""
        await self._load_state()
        if self._polling_enabled and self._poll_task is None:
            self._poll_task = asyncio.create_task(self._poll_loop())

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def _poll_loop(self) -> None:
        if self._clear_webhook_on_start:
            await self._ensure_webhook_cleared()

        while self._polling_enabled and not self._shutting_down:
            try:
                updates = await self._get_updates()
                self._retry_attempt = 0
                self._conflict_retried = False
            except asyncio.CancelledError:
                raise
            except Exception as e:
                delay = await self._handle_poll_error(e)
                if delay is None:
                    return
                await asyncio.sleep(delay)
                continue

            for update in updates:
                self._track_update(update)
                try:
                    await self._process_update(update)
                except Exception as e:
                    logger.error(f"Telegram update {update.get('update_id')} failed: {e}")

    async def _handle_poll_error(self, error: Exception) -> float | None:
        """Decide what to do after a failed poll. Returns seconds to wait, or None to stop."""
        if self._shutting_down:
            return None

        if isinstance(error, TelegramApiError) and error.is_conflict:
            if not self._conflict_retried:
                self._conflict_retried = True
                logger.warning("Telegram polling conflict; clearing webhook and retrying")
                await asyncio.sleep(1.0)
                await self._ensure_webhook_cleared(force=True)
                return 0.0

            self._polling_enabled = False
            logger.warning("Telegram polling stopped (another instance is polling)")
            if self.on_fatal:
                result = self.on_fatal("polling_conflict", error)
                if inspect.isawaitable(result):
                    await result
            return None

        delay_ms = self.retry.delay_ms(self._retry_attempt)
        self._retry_attempt += 1
        logger.warning(f"Telegram polling error, retrying in {delay_ms}ms: {error}")
        return delay_ms / 1000

    # -- Bot API ----------------------------------------------------------

    async def _call(self, method: str, timeout: float = 30.0, **kwargs: Any) -> Any:
        response = await self._client.post(
            f"{self.api_base}/bot{self.token}/{method}",
            timeout=timeout,
            **kwargs,
        )
        try:
            data = response.json()
        except json.JSONDecodeError:
            raise TelegramApiError(method, response.status_code, response.text[:200])
        if not data.get("ok"):
            raise TelegramApiError(
                method,
                int(data.get("error_code") or response.status_code),
                data.get("description", ""),
            )
        return data.get("result")

    async def _get_updates(self) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"timeout": self.poll_timeout, "allowed_updates": ["message"]}
        if self._last_update_id is not None:
            params["offset"] = self._last_update_id + 1
        return await self._call("getUpdates", timeout=self.poll_timeout + 10, json=params) or []

    async def _ensure_webhook_cleared(self, force: bool = False) -> None:
        if self._cleared_webhook and not force:
            return
        try:
            await self._call("deleteWebhook")
            self._cleared_webhook = True
            logger.info("Telegram webhook cleared for polling")
        except (httpx.HTTPError, TelegramApiError) as e:
            logger.warning(f"Failed to clear Telegram webhook: {e}")

    async def _send_file(self, target_id: str, file: FileReference, caption: str | None = None) -> None:
        is_image = file.mime_type.startswith("image/")
        method, field = ("sendPhoto", "photo") if is_image else ("sendDocument", "document")
        content = await asyncio.to_thread(Path(file.path).read_bytes)
        data = {"chat_id": target_id}
        if caption:
            data["caption"] = caption
        await self._call(
            method,
            timeout=60.0,
            data=data,
            files={field: (file.name, content, file.mime_type)},
        )

    async def _typing_loop(self, target_id: str) -> None:
        while not self._shutting_down:
            try:
                await self._call("sendChatAction", json={"chat_id": target_id, "action": "typing"})
            except (httpx.HTTPError, TelegramApiError) as e:
                logger.debug(f"Telegram typing indicator failed: {e}")
            await asyncio.sleep(TYPING_REFRESH_SECONDS)

    # -- Inbound ----------------------------------------------------------

    def is_allowed(self, user_id: str | None) -> bool:
        if not self.allow_from:
            return True
        return user_id is not None and user_id in self.allow_from

    async def _process_update(self, update: dict[str, Any]) -> None:
        message = update.get("message")
        if not message:
            return

        sender = message.get("from") or {}
        user_id = str(sender["id"]) if "id" in sender else None
        if not self.is_allowed(user_id):
            logger.warning(f"Access denied for Telegram user {user_id}")
            return

        files = await self._extract_files(message)
        payload = ConnectorMessage(
            text=message.get("text") or message.get("caption"),
            files=files,
        )
        context = MessageContext(channel_id=str(message["chat"]["id"]), user_id=user_id)

        for handler in list(self._handlers):
            result = handler(payload, context)
            if inspect.isawaitable(result):
                await result

    async def _extract_files(self, message: dict[str, Any]) -> list[FileReference]:
        files: list[FileReference] = []

        photos = message.get("photo") or []
        if photos:
            largest = max(photos, key=lambda p: p.get("file_size") or 0)
            stored = await self._download_file(
                largest["file_id"], f"photo-{largest['file_id']}.jpg", "image/jpeg"
            )
            if stored:
                files.append(stored)

        document = message.get("document") or {}
        if document.get("file_id"):
            stored = await self._download_file(
                document["file_id"],
                document.get("file_name") or f"document-{document['file_id']}",
                document.get("mime_type") or "application/octet-stream",
            )
            if stored:
                files.append(stored)

        return files

    async def _download_file(self, file_id: str, name: str, mime_type: str) -> FileReference | None:
        try:
            info = await self._call("getFile", json={"file_id": file_id})
            response = await self._client.get(
                f"{self.api_base}/file/bot{self.token}/{info['file_path']}",
                timeout=60.0,
            )
            response.raise_for_status()
        except (httpx.HTTPError, TelegramApiError, KeyError) as e:
            logger.warning(f"Telegram file download failed: {e}")
            return None

        stored = await self.file_store.save_bytes(
            response.content, name, mime_type=mime_type, source="telegram"
        )
        return stored.to_reference()

    # -- Offset persistence ---------------------------------------------

    def _track_update(self, update: dict[str, Any]) -> None:
        update_id = update.get("update_id")
        if not isinstance(update_id, int):
            return
        if self._last_update_id is None or update_id > self._last_update_id:
            self._last_update_id = update_id
            self._schedule_persist()

    def _schedule_persist(self) -> None:
        if not self.state_path or (self._persist_task and not self._persist_task.done()):
            return

        async def persist_later() -> None:
            await asyncio.sleep(PERSIST_DEBOUNCE_SECONDS)
            await self._persist_state()

        self._persist_task = asyncio.create_task(persist_later())

    async def _load_state(self) -> None:
        if not self.state_path or not self.state_path.exists():
            return
        try:
            data = json.loads(self.state_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Telegram connector state load failed: {e}")
            return
        if isinstance(data.get("lastUpdateId"), int):
            self._last_update_id = data["lastUpdateId"]

    async def _persist_state(self) -> None:
        if not self.state_path or self._last_update_id is None:
            return
        try:
            self.state_path.parent.mkdir(parents=True, exist_ok=True)
            self.state_path.write_text(
                json.dumps({"lastUpdateId": self._last_update_id}), encoding="utf-8"
            )
        except OSError as e:
            logger.warning(f"Telegram connector state persist failed: {e}")

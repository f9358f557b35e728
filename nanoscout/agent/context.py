"""Helpers for turning session traffic into model messages and back."""

import asyncio
import base64
from pathlib import Path
from typing import Any

import json_repair
from loguru import logger

from nanoscout.providers.base import ToolCallRequest
from nanoscout.session.types import SessionMessage


def _read_base64(path: str) -> str:
    return base64.b64encode(Path(path).read_bytes()).decode()


async def build_user_message(entry: SessionMessage) -> dict[str, Any]:
    """
    Build the user message for one inbound entry.

    Images are inlined as base64 data URLs; other files are described in a
    text block so the model knows they arrived.
    """
    text = entry.message.text or ""
    files = entry.message.files
    if not files:
        return {"role": "user", "content": text}

    content: list[dict[str, Any]] = []
    if text:
        content.append({"type": "text", "text": text})

    for file in files:
        if file.mime_type.startswith("image/"):
            try:
                b64 = await asyncio.to_thread(_read_base64, file.path)
            except OSError as e:
                logger.warning(f"Could not read image {file.path}: {e}")
                continue
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:{file.mime_type};base64,{b64}"},
            })
        else:
            content.append({
                "type": "text",
                "text": f"File received: {file.name} ({file.mime_type}, {file.size} bytes)",
            })

    return {"role": "user", "content": content}


def extract_tool_calls(message: dict[str, Any]) -> list[ToolCallRequest]:
    """Tool calls carried by an assistant message."""
    if message.get("role") != "assistant":
        return []

    calls = []
    for raw in message.get("tool_calls") or []:
        function = raw.get("function") or {}
        args = function.get("arguments") or {}
        if isinstance(args, str):
            args = json_repair.loads(args) if args else {}
        calls.append(ToolCallRequest(
            id=raw.get("id", ""),
            name=function.get("name", ""),
            arguments=args if isinstance(args, dict) else {},
        ))
    return calls


def extract_assistant_text(message: dict[str, Any]) -> str | None:
    """Plain text of an assistant message, or None when it has none."""
    if message.get("role") != "assistant":
        return None
    content = message.get("content")
    if isinstance(content, str):
        return content or None
    if isinstance(content, list):
        parts = [
            block.get("text") for block in content
            if isinstance(block, dict) and block.get("type") == "text" and block.get("text")
        ]
        return "\n".join(parts) or None
    return None


def normalize_session_state(state: Any) -> dict[str, Any]:
    """Coerce a replayed state payload into ``{"messages": [...]}``."""
    if isinstance(state, dict) and isinstance(state.get("messages"), list):
        return {"messages": state["messages"]}
    return {"messages": []}

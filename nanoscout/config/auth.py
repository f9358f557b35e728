"""Credential storage for plugin instances.

Credentials live in a JSON file (owner-only permissions) keyed by plugin
instance id, separate from the settings file so settings can be shared or
versioned without leaking tokens.
"""

import json
import os
from pathlib import Path
from typing import Any

from loguru import logger


class AuthStore:
    """JSON-backed credential store keyed by plugin instance id."""

    def __init__(self, path: Path):
        self.path = path

    def _read(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path) as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning(f"Auth file {self.path} is not valid JSON: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, dict[str, Any]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.chmod(self.path, 0o600)

    def get_entry(self, instance_id: str) -> dict[str, Any]:
        entry = self._read().get(instance_id)
        return dict(entry) if isinstance(entry, dict) else {}

    def _get_field(self, instance_id: str, field: str) -> str | None:
        value = self.get_entry(instance_id).get(field)
        return value if isinstance(value, str) and value else None

    def _set_field(self, instance_id: str, field: str, value: str) -> None:
        data = self._read()
        entry = data.get(instance_id) if isinstance(data.get(instance_id), dict) else {}
        data[instance_id] = {**entry, field: value}
        self._write(data)

    def get_token(self, instance_id: str) -> str | None:
        return self._get_field(instance_id, "token")

    def set_token(self, instance_id: str, token: str) -> None:
        self._set_field(instance_id, "token", token)

    def get_api_key(self, instance_id: str) -> str | None:
        return self._get_field(instance_id, "apiKey")

    def set_api_key(self, instance_id: str, api_key: str) -> None:
        self._set_field(instance_id, "apiKey", api_key)

    def remove(self, instance_id: str) -> bool:
        """Delete every credential for an instance."""
        data = self._read()
        if instance_id not in data:
            return False
        del data[instance_id]
        self._write(data)
        return True

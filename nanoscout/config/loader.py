"""Settings loading utilities."""

import json
import os
import stat
from pathlib import Path
from typing import Callable

from loguru import logger
from pydantic import ValidationError

from nanoscout.config.schema import PluginInstanceConfig, Settings


def get_settings_path() -> Path:
    """Get the default settings file path."""
    return Path.home() / ".nanoscout" / "settings.json"


def load_settings(settings_path: Path | None = None) -> Settings:
    """
    Load settings from file or fall back to defaults.

    Args:
        settings_path: Optional path to the settings file. Uses default if not provided.

    Returns:
        Loaded settings object.
    """
    path = settings_path or get_settings_path()

    if path.exists():
        try:
            current_mode = stat.S_IMODE(os.stat(path).st_mode)
            if current_mode & 0o077:
                logger.warning(
                    f"Settings file has insecure permissions: {oct(current_mode)}. "
                    f"Fixing to 0o600 (owner read/write only)..."
                )
                os.chmod(path, 0o600)
        except OSError as e:
            logger.warning(f"Could not verify settings permissions: {e}")

        try:
            with open(path) as f:
                data = json.load(f)
            return Settings.model_validate(data)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Failed to load settings from {path}: {e}. Using defaults.")

    return Settings()


def save_settings(settings: Settings, settings_path: Path | None = None) -> None:
    """
    Save settings to file with secure permissions.

    Args:
        settings: Settings to save.
        settings_path: Optional path to save to. Uses default if not provided.
    """
    path = settings_path or get_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    os.chmod(path.parent, 0o700)

    data = settings.model_dump(by_alias=True, exclude_none=True)

    with open(path, "w") as f:
        json.dump(data, f, indent=2)
        f.write("\n")

    os.chmod(path, 0o600)
    logger.debug(f"Settings saved with secure permissions: {path}")


def update_settings_file(
    settings_path: Path | None,
    updater: Callable[[Settings], Settings],
) -> Settings:
    """Read, transform and write back the settings file."""
    updated = updater(load_settings(settings_path))
    save_settings(updated, settings_path)
    return updated


def upsert_plugin(
    plugins: list[PluginInstanceConfig],
    entry: PluginInstanceConfig,
) -> list[PluginInstanceConfig]:
    """Return a new plugin list with ``entry`` replacing any same-id instance."""
    return [item for item in plugins if item.instance_id != entry.instance_id] + [entry]


def remove_plugin(
    plugins: list[PluginInstanceConfig],
    instance_id: str,
) -> list[PluginInstanceConfig]:
    """Return a new plugin list without ``instance_id``."""
    return [item for item in plugins if item.instance_id != instance_id]

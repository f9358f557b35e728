"""Configuration module for nanoscout."""

from nanoscout.config.auth import AuthStore
from nanoscout.config.loader import get_settings_path, load_settings, save_settings
from nanoscout.config.schema import (
    CronTaskConfig,
    InferenceProviderConfig,
    PluginInstanceConfig,
    Settings,
)

__all__ = [
    "AuthStore",
    "CronTaskConfig",
    "InferenceProviderConfig",
    "PluginInstanceConfig",
    "Settings",
    "get_settings_path",
    "load_settings",
    "save_settings",
]

"""Exception types raised by the engine and its components."""


class NanoscoutError(Exception):
    """Base class for nanoscout errors."""


class PluginNotFoundError(NanoscoutError):
    """Raised when a plugin id is not present in the catalog."""

    def __init__(self, plugin_id: str):
        super().__init__(f"Unknown plugin: {plugin_id}")
        self.plugin_id = plugin_id


class PluginLoadError(NanoscoutError):
    """Raised when a plugin's load hook fails."""

    def __init__(self, instance_id: str, message: str):
        super().__init__(f"Plugin {instance_id} failed to load: {message}")
        self.instance_id = instance_id


class NoInferenceProviderError(NanoscoutError):
    """Raised when no configured provider could produce a client."""

    def __init__(self, message: str = "No inference provider available"):
        super().__init__(message)


class CronTaskError(NanoscoutError):
    """Raised for invalid or conflicting cron tasks."""

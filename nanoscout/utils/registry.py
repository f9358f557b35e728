"""Id-keyed registry that remembers which plugin owns each entry."""

from typing import Generic, TypeVar

from loguru import logger

T = TypeVar("T")


class CapabilityRegistry(Generic[T]):
    """
    Map of capability id to implementation, annotated with the owning plugin.

    Registering an id that already exists replaces it; the previous owner
    loses it.
    """

    kind = "capability"

    def __init__(self):
        self._entries: dict[str, tuple[T, str]] = {}

    def register(self, plugin_id: str, id: str, impl: T) -> None:
        previous = self._entries.get(id)
        if previous is not None and previous[1] != plugin_id:
            logger.warning(f"{self.kind} {id} re-registered by {plugin_id} (was {previous[1]})")
        self._entries[id] = (impl, plugin_id)

    def unregister(self, id: str) -> bool:
        return self._entries.pop(id, None) is not None

    def unregister_by_plugin(self, plugin_id: str) -> list[str]:
        removed = [id for id, (_, owner) in self._entries.items() if owner == plugin_id]
        for id in removed:
            del self._entries[id]
        return removed

    def get(self, id: str) -> T | None:
        entry = self._entries.get(id)
        return entry[0] if entry else None

    def owner(self, id: str) -> str | None:
        entry = self._entries.get(id)
        return entry[1] if entry else None

    def ids(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, id: object) -> bool:
        return id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def list(self) -> list[T]:
        return [impl for impl, _ in self._entries.values()]

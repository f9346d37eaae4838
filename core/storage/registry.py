"""
Storage plugin registry.

Maps plugin identifiers (the value of the storage_plugin_package setting)
to zero-argument callables producing a PluginFactory. Selection of the
backend stays late-bound, but only identifiers that were registered
up front can ever be loaded.
"""

from importlib.metadata import entry_points
from typing import Callable, Optional

from core.logging import get_logger
from core.storage.base import KVStoragePluginFactory
from core.storage.memory import InMemoryKVStorageFactory


logger = get_logger(__name__)

ENTRY_POINT_GROUP = "bif_api_server.storage_plugins"

FactoryProvider = Callable[[], KVStoragePluginFactory]


class UnknownPluginError(KeyError):
    """Raised when an identifier has no registered factory."""

    def __init__(self, identifier: str, known: list[str]):
        self.identifier = identifier
        self.known = known
        super().__init__(identifier)

    def __str__(self) -> str:
        return (
            f"Unknown storage plugin: {self.identifier}. "
            f"Registered plugins: {self.known}"
        )


def _mongodb_factory() -> KVStoragePluginFactory:
    # Deferred so motor is only imported when the plugin is actually selected
    from core.storage.mongodb import MongoDBKVStorageFactory

    return MongoDBKVStorageFactory()


class PluginRegistry:
    """Identifier -> factory provider mapping."""

    def __init__(self) -> None:
        self._providers: dict[str, FactoryProvider] = {}

    def register(
        self,
        identifier: str,
        provider: FactoryProvider,
        *,
        replace: bool = False,
    ) -> None:
        if not identifier:
            raise ValueError("Plugin identifier must not be empty")
        if identifier in self._providers and not replace:
            raise ValueError(f"Storage plugin already registered: {identifier}")

        self._providers[identifier] = provider
        logger.debug("Storage plugin registered", plugin=identifier)

    def unregister(self, identifier: str) -> None:
        self._providers.pop(identifier, None)

    def resolve(self, identifier: str) -> FactoryProvider:
        try:
            return self._providers[identifier]
        except KeyError:
            raise UnknownPluginError(identifier, self.identifiers()) from None

    def identifiers(self) -> list[str]:
        return sorted(self._providers)

    def __contains__(self, identifier: object) -> bool:
        return identifier in self._providers

    def discover(self, group: str = ENTRY_POINT_GROUP) -> list[str]:
        """
        Register factories published by installed distributions.

        Each entry point must load to a zero-argument callable returning a
        factory (usually the factory class itself). Identifiers that are
        already registered are left untouched.
        """
        added = []
        for ep in entry_points(group=group):
            if ep.name in self._providers:
                continue
            self._providers[ep.name] = ep.load
            added.append(ep.name)

        if added:
            logger.info("Discovered storage plugins", plugins=added, group=group)
        return added


def create_default_registry(discover: bool = True) -> PluginRegistry:
    """Registry holding the built-in plugins plus any installed ones."""
    registry = PluginRegistry()
    registry.register("memory", InMemoryKVStorageFactory)
    registry.register("mongodb", _mongodb_factory)
    if discover:
        registry.discover()
    return registry


_default_registry: Optional[PluginRegistry] = None


def get_default_registry() -> PluginRegistry:
    """Process-wide registry, created on first use."""
    global _default_registry
    if _default_registry is None:
        _default_registry = create_default_registry()
    return _default_registry

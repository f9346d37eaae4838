"""
Storage plugin loader.

Turns the configured plugin identifier and its JSON-encoded options into
a ready KVStoragePlugin. Loading happens once per process; every step
failure is reported as a PluginLoadError so the caller can abort startup.
"""

import asyncio
import json
from typing import Any, Optional

from core.logging import get_logger
from core.storage.base import KVStoragePlugin
from core.storage.registry import PluginRegistry, get_default_registry


logger = get_logger(__name__)


class PluginLoadError(RuntimeError):
    """A storage plugin could not be resolved, configured or created."""

    def __init__(self, identifier: str, step: str, message: str):
        self.identifier = identifier
        self.step = step
        super().__init__(f"Storage plugin {identifier!r} failed at {step}: {message}")


class PluginLoader:
    """
    Resolves and instantiates the storage plugin.

    Steps, in order:
    1. resolve the identifier in the registry
    2. decode the options JSON
    3. instantiate the factory
    4. await factory.create(options)

    Usage:
        loader = PluginLoader("memory", "{}")
        storage = await loader.load()
    """

    def __init__(
        self,
        identifier: str,
        options_json: str,
        registry: Optional[PluginRegistry] = None,
    ):
        self.identifier = identifier
        self.options_json = options_json
        self._registry = registry
        self._plugin: Optional[KVStoragePlugin] = None
        self._lock = asyncio.Lock()

    @property
    def plugin(self) -> Optional[KVStoragePlugin]:
        """The loaded plugin, or None before load() succeeded."""
        return self._plugin

    async def load(self) -> KVStoragePlugin:
        """Load the plugin; later calls return the same instance."""
        async with self._lock:
            if self._plugin is None:
                self._plugin = await self._load()
            return self._plugin

    async def _load(self) -> KVStoragePlugin:
        registry = self._registry or get_default_registry()

        try:
            provider = registry.resolve(self.identifier)
        except KeyError as e:
            raise PluginLoadError(self.identifier, "resolve", str(e)) from e

        options = self.parse_options(self.options_json)

        try:
            factory = provider()
            if isinstance(factory, type):
                factory = factory()
        except Exception as e:
            raise PluginLoadError(self.identifier, "factory", str(e)) from e

        logger.info(
            "Creating storage plugin",
            plugin=self.identifier,
            factory=type(factory).__name__,
        )

        try:
            plugin = await factory.create(options)
        except Exception as e:
            raise PluginLoadError(self.identifier, "create", str(e)) from e

        if not isinstance(plugin, KVStoragePlugin):
            raise PluginLoadError(
                self.identifier,
                "create",
                f"factory returned {type(plugin).__name__}, not a KVStoragePlugin",
            )

        logger.info("Storage plugin ready", plugin=self.identifier)
        return plugin

    def parse_options(self, options_json: str) -> Any:
        try:
            return json.loads(options_json)
        except (TypeError, ValueError) as e:
            raise PluginLoadError(
                self.identifier, "options", f"invalid options JSON ({e})"
            ) from e

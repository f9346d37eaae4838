"""
Storage abstraction layer.

Provides pluggable key/value storage for route handlers. The backend is
chosen at startup by identifier through the plugin registry.

Built-in plugins:
- memory (default, in-process)
- mongodb
"""

from core.storage.base import (
    KVStoragePlugin,
    KVStoragePluginFactory,
    PluginFactory,
)
from core.storage.loader import PluginLoadError, PluginLoader
from core.storage.registry import (
    ENTRY_POINT_GROUP,
    PluginRegistry,
    UnknownPluginError,
    create_default_registry,
    get_default_registry,
)

__all__ = [
    # Abstract interfaces
    "KVStoragePlugin",
    "KVStoragePluginFactory",
    "PluginFactory",
    # Loading
    "PluginLoadError",
    "PluginLoader",
    # Registry
    "ENTRY_POINT_GROUP",
    "PluginRegistry",
    "UnknownPluginError",
    "create_default_registry",
    "get_default_registry",
]

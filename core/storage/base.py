"""
Abstract base classes for storage plugins.

This module defines the contracts that every storage plugin must follow.
The API server only ever talks to a KVStoragePlugin; which implementation
backs it is decided at startup through a PluginFactory.
"""

from abc import ABC, abstractmethod
from typing import Any, Generic, Optional, TypeVar


T = TypeVar("T")


class KVStoragePlugin(ABC):
    """
    Key/value storage capability shared by every route handler.

    Values are JSON-compatible Python objects. Implementations are
    responsible for their own task-safety; callers never lock around them.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the value stored under key, or None."""
        pass

    @abstractmethod
    async def has(self, key: str) -> bool:
        """Check whether key holds a value."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """
        Store value under key.

        Overwrites any existing value.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """
        Remove key.

        Returns True if a value was removed.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """Clean up resources (connections, pools)."""
        pass


class PluginFactory(ABC, Generic[T]):
    """
    Produces a plugin instance from its decoded options.

    Factories must be constructible without arguments so the loader can
    instantiate them from a registry entry.
    """

    @abstractmethod
    async def create(self, options: Any) -> T:
        """Build and initialize a plugin instance."""
        pass


class KVStoragePluginFactory(PluginFactory[KVStoragePlugin]):
    """Factory producing key/value storage plugins."""

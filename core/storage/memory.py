"""
In-process storage plugin.

Keeps values in a dict guarded by an asyncio lock. Suitable for local
development and tests; nothing survives a restart.
"""

import asyncio
import copy
from typing import Any, Optional

from core.logging import get_logger
from core.storage.base import KVStoragePlugin, KVStoragePluginFactory


logger = get_logger(__name__)


class InMemoryKVStorage(KVStoragePlugin):
    """Dict-backed key/value storage."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = dict(initial or {})
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            value = self._data.get(key)
        # Callers must not be able to mutate stored state through the result
        return copy.deepcopy(value)

    async def has(self, key: str) -> bool:
        async with self._lock:
            return key in self._data

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = copy.deepcopy(value)

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._data.pop(key, None) is not None

    async def close(self) -> None:
        async with self._lock:
            self._data.clear()
        logger.debug("In-memory storage closed")

    def __len__(self) -> int:
        return len(self._data)


class InMemoryKVStorageFactory(KVStoragePluginFactory):
    """
    Factory for InMemoryKVStorage.

    Options:
        initial: optional mapping of keys to pre-populate
    """

    async def create(self, options: Any) -> InMemoryKVStorage:
        options = options or {}
        if not isinstance(options, dict):
            raise TypeError(
                f"In-memory storage options must be an object, got {type(options).__name__}"
            )

        initial = options.get("initial") or {}
        if not isinstance(initial, dict):
            raise TypeError("In-memory storage option 'initial' must be an object")

        logger.info("Creating in-memory storage", keys=len(initial))
        return InMemoryKVStorage(initial=initial)

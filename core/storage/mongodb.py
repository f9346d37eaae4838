"""
MongoDB storage plugin implementation.

Stores every key as its own document in a dedicated collection,
using the key as the document _id.
"""

from typing import Any, Optional

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection

from core.logging import get_logger
from core.storage.base import KVStoragePlugin, KVStoragePluginFactory


logger = get_logger(__name__)


class MongoDBKVStorage(KVStoragePlugin):
    """
    MongoDB-based key/value storage.

    Documents look like {"_id": <key>, "value": <value>}.
    """

    def __init__(
        self,
        connection_string: str,
        database_name: str = "bif",
        collection_name: str = "kv_storage",
    ):
        """
        Initialize MongoDB storage.

        Args:
            connection_string: MongoDB connection URI
            database_name: Database name
            collection_name: Collection holding the key/value documents
        """
        self._connection_string = connection_string
        self._database_name = database_name
        self._collection_name = collection_name
        self._client: Optional[AsyncIOMotorClient] = None

    async def setup(self) -> None:
        """Open the client and check the server is reachable."""
        self._client = AsyncIOMotorClient(self._connection_string)
        await self._client.admin.command("ping")

        logger.info(
            "MongoDB storage initialized",
            database=self._database_name,
            collection=self._collection_name,
        )

    @property
    def _collection(self) -> AsyncIOMotorCollection:
        if self._client is None:
            raise RuntimeError(
                "Storage not initialized. Call setup() first."
            )
        return self._client[self._database_name][self._collection_name]

    async def get(self, key: str) -> Optional[Any]:
        doc = await self._collection.find_one({"_id": key})
        if doc is None:
            return None
        return doc.get("value")

    async def has(self, key: str) -> bool:
        count = await self._collection.count_documents({"_id": key}, limit=1)
        return count > 0

    async def set(self, key: str, value: Any) -> None:
        await self._collection.update_one(
            {"_id": key},
            {"$set": {"value": value}},
            upsert=True,
        )
        logger.debug("Key stored", key=key)

    async def delete(self, key: str) -> bool:
        result = await self._collection.delete_one({"_id": key})
        return result.deleted_count > 0

    async def close(self) -> None:
        """Close MongoDB connection."""
        if self._client is not None:
            self._client.close()
            self._client = None
        logger.info("MongoDB storage closed")


class MongoDBKVStorageFactory(KVStoragePluginFactory):
    """
    Factory for MongoDBKVStorage.

    Options:
        url: MongoDB connection URI (required)
        database: database name, default "bif"
        collection: collection name, default "kv_storage"
    """

    async def create(self, options: Any) -> MongoDBKVStorage:
        if not isinstance(options, dict) or not options.get("url"):
            raise ValueError("MongoDB storage requires an options object with a 'url'")

        storage = MongoDBKVStorage(
            connection_string=options["url"],
            database_name=options.get("database", "bif"),
            collection_name=options.get("collection", "kv_storage"),
        )
        await storage.setup()
        return storage

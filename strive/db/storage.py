"""
strive/db/storage.py

Purpose: Local durable key-value store

- Flat string-keyed storage for login markers and the hosted session
- MongoDB-backed store for deployments, in-memory store for tests/dev
- All operations are async and must be awaited before dependent logic
"""

from datetime import datetime
from typing import Dict, Iterable, Optional, Protocol

from pymongo.errors import PyMongoError

from strive.core.exceptions import StorageError
from strive.core.logging import get_logger

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """
    Async flat key-value storage.
    """

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str) -> None:
        ...

    async def remove(self, key: str) -> None:
        ...

    async def multi_get(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        ...

    async def multi_set(self, items: Dict[str, str]) -> None:
        ...

    async def multi_remove(self, keys: Iterable[str]) -> None:
        ...


class InMemoryKeyValueStore:
    """
    Dict-backed store. Not durable; used in development and tests.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def multi_get(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        return {key: self._data.get(key) for key in keys}

    async def multi_set(self, items: Dict[str, str]) -> None:
        self._data.update(items)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)


class MongoKeyValueStore:
    """
    Store backed by the local_storage collection ({key, value, updated_at}).
    """

    def __init__(self, collection):
        self._collection = collection

    async def get(self, key: str) -> Optional[str]:
        try:
            document = await self._collection.find_one({"key": key})
        except PyMongoError as e:
            logger.error(f"Storage read failed for {key}: {e}")
            raise StorageError(f"Failed to read {key}") from e
        return document["value"] if document else None

    async def set(self, key: str, value: str) -> None:
        try:
            await self._collection.update_one(
                {"key": key},
                {"$set": {"value": value, "updated_at": datetime.utcnow()}},
                upsert=True
            )
        except PyMongoError as e:
            logger.error(f"Storage write failed for {key}: {e}")
            raise StorageError(f"Failed to write {key}") from e

    async def remove(self, key: str) -> None:
        try:
            await self._collection.delete_one({"key": key})
        except PyMongoError as e:
            logger.error(f"Storage delete failed for {key}: {e}")
            raise StorageError(f"Failed to delete {key}") from e

    async def multi_get(self, keys: Iterable[str]) -> Dict[str, Optional[str]]:
        keys = list(keys)
        try:
            cursor = self._collection.find({"key": {"$in": keys}})
            found = {document["key"]: document["value"] async for document in cursor}
        except PyMongoError as e:
            logger.error(f"Storage read failed for {keys}: {e}")
            raise StorageError("Failed to read local markers") from e
        return {key: found.get(key) for key in keys}

    async def multi_set(self, items: Dict[str, str]) -> None:
        for key, value in items.items():
            await self.set(key, value)

    async def multi_remove(self, keys: Iterable[str]) -> None:
        keys = list(keys)
        try:
            await self._collection.delete_many({"key": {"$in": keys}})
        except PyMongoError as e:
            logger.error(f"Storage delete failed for {keys}: {e}")
            raise StorageError("Failed to clear local markers") from e

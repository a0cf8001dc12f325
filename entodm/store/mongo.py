"""
MongoDB document store implementation.

This module adapts pymongo's asyncio client to the DocumentStore protocol.
It works with any MongoDB-compatible server supporting aggregation with
$lookup and $toObjectId (MongoDB 4.0+).

Invariants:
    - connect() returns only after the server answered a ping
    - Store failures after connect() propagate as pymongo exceptions
    - No retries beyond the driver's own retryable reads/writes

How to change safely:
    - Test against a live server (tests/e2e) before deploying
    - Keep option names in OdmSettings.client_options() in driver spelling
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from pymongo import AsyncMongoClient
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from ..config import redact_url
from .base import Document, SortSpec, StoreConnectionError

logger = logging.getLogger(__name__)


class MongoCollection:
    """DocumentCollection backed by a pymongo AsyncCollection."""

    def __init__(self, collection: AsyncCollection) -> None:
        self._collection = collection

    @property
    def name(self) -> str:
        return self._collection.name

    async def insert_one(self, document: Mapping[str, Any]) -> Any:
        result = await self._collection.insert_one(dict(document))
        return result.inserted_id

    async def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> None:
        if not documents:
            return
        await self._collection.insert_many([dict(d) for d in documents])

    async def find_one(self, filter: Mapping[str, Any]) -> Document | None:
        return await self._collection.find_one(dict(filter))

    async def find(
        self,
        filter: Mapping[str, Any],
        *,
        limit: int | None = None,
        skip: int | None = None,
        sort: SortSpec | None = None,
    ) -> list[Document]:
        cursor = self._collection.find(
            dict(filter),
            skip=skip or 0,
            limit=limit or 0,
            sort=list(sort.items()) if sort else None,
        )
        return await cursor.to_list(None)

    async def update_one(
        self,
        filter: Mapping[str, Any],
        values: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> None:
        await self._collection.update_one(dict(filter), {"$set": dict(values)}, upsert=upsert)

    async def update_many(self, filter: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        result = await self._collection.update_many(dict(filter), {"$set": dict(values)})
        return result.matched_count

    async def delete_one(self, filter: Mapping[str, Any]) -> int:
        result = await self._collection.delete_one(dict(filter))
        return result.deleted_count

    async def delete_many(self, filter: Mapping[str, Any]) -> int:
        result = await self._collection.delete_many(dict(filter))
        return result.deleted_count

    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        return await self._collection.count_documents(dict(filter))

    async def aggregate(self, stages: Sequence[Mapping[str, Any]]) -> list[Document]:
        cursor = await self._collection.aggregate([dict(s) for s in stages])
        return await cursor.to_list(None)


class MongoDocumentStore:
    """MongoDB implementation of the DocumentStore protocol.

    Attributes:
        url: Connection string
        database_name: Database to use (None = the one named in the URL)

    Example:
        >>> store = MongoDocumentStore("mongodb://localhost:27017/app")
        >>> await store.connect()
        >>> await store.collection("user").count_documents({})
    """

    def __init__(self, url: str, database: str | None = None, **client_options: Any) -> None:
        """Initialize MongoDB store.

        Args:
            url: MongoDB connection string
            database: Database name (defaults to the one in the URL)
            **client_options: Keyword arguments for AsyncMongoClient
        """
        self.url = url
        self.database_name = database
        self.client_options = client_options
        self._client: AsyncMongoClient | None = None
        self._database: AsyncDatabase | None = None

    @property
    def is_connected(self) -> bool:
        """Whether connected to MongoDB."""
        return self._database is not None

    @property
    def database(self) -> AsyncDatabase:
        """The underlying pymongo database."""
        if self._database is None:
            raise StoreConnectionError("Not connected")
        return self._database

    async def connect(self) -> None:
        """Connect to MongoDB and verify the server is reachable.

        Raises:
            StoreConnectionError: If the client cannot be created or the
                server does not answer
        """
        if self.is_connected:
            return

        client: AsyncMongoClient | None = None
        try:
            client = AsyncMongoClient(self.url, **self.client_options)
            if self.database_name:
                database = client.get_database(self.database_name)
            else:
                database = client.get_default_database()
            await client.admin.command("ping")
        except PyMongoError as e:
            if client is not None:
                await client.close()
            raise StoreConnectionError(
                f"Failed to connect to MongoDB at {redact_url(self.url)}: {e}"
            ) from e

        self._client = client
        self._database = database
        logger.info(
            "Connected to MongoDB",
            extra={"url": redact_url(self.url), "database": database.name},
        )

    async def close(self) -> None:
        """Close the client."""
        if self._client is not None:
            await self._client.close()
        self._client = None
        self._database = None
        logger.info("MongoDB connection closed")

    def collection(self, name: str) -> MongoCollection:
        """Get a collection by name."""
        return MongoCollection(self.database.get_collection(name))

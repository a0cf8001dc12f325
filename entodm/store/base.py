"""
Base protocol and types for the document store abstraction.

This module defines the DocumentStore and DocumentCollection protocols
every backend must implement, along with the store error types.

Invariants:
    - Documents are plain dicts keyed by string; "_id" holds an ObjectId
    - update_one/update_many receive the values to $set, not an update
      document: the backend owns the update operator
    - Failures of an established store (timeouts, duplicate keys) surface
      as the driver's own exceptions

How to change safely:
    - Protocol changes require updating every backend
    - Keep InMemoryDocumentStore semantics aligned with MongoDB for every
      operator and stage the CRUD engine emits
"""

from __future__ import annotations

import logging
from abc import abstractmethod
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import OdmSettings

logger = logging.getLogger(__name__)

Document = dict[str, Any]
SortSpec = Mapping[str, int]


class StoreError(Exception):
    """Base exception for store setup failures."""

    pass


class StoreConnectionError(StoreError):
    """Connection to the store failed or the store is not connected."""

    pass


@runtime_checkable
class DocumentCollection(Protocol):
    """One named collection of documents."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Collection name."""
        ...

    @abstractmethod
    async def insert_one(self, document: Mapping[str, Any]) -> Any:
        """Insert one document and return its generated identifier."""
        ...

    @abstractmethod
    async def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> None:
        """Insert several documents in one round-trip."""
        ...

    @abstractmethod
    async def find_one(self, filter: Mapping[str, Any]) -> Document | None:
        """First matching document, or None."""
        ...

    @abstractmethod
    async def find(
        self,
        filter: Mapping[str, Any],
        *,
        limit: int | None = None,
        skip: int | None = None,
        sort: SortSpec | None = None,
    ) -> list[Document]:
        """Matching documents, with optional pagination and sort."""
        ...

    @abstractmethod
    async def update_one(
        self,
        filter: Mapping[str, Any],
        values: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> None:
        """Set values on the first matching document (create it on upsert)."""
        ...

    @abstractmethod
    async def update_many(self, filter: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        """Set values on every matching document and return the matched count."""
        ...

    @abstractmethod
    async def delete_one(self, filter: Mapping[str, Any]) -> int:
        """Delete the first matching document and return the deleted count."""
        ...

    @abstractmethod
    async def delete_many(self, filter: Mapping[str, Any]) -> int:
        """Delete every matching document and return the deleted count."""
        ...

    @abstractmethod
    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        """Number of matching documents."""
        ...

    @abstractmethod
    async def aggregate(self, stages: Sequence[Mapping[str, Any]]) -> list[Document]:
        """Run an aggregation pipeline.

        Backends must support at least $match, $set, $lookup, $sort,
        $skip and $limit.
        """
        ...


@runtime_checkable
class DocumentStore(Protocol):
    """A connected database handing out collections.

    Example:
        >>> store = MongoDocumentStore("mongodb://localhost:27017/app")
        >>> await store.connect()
        >>> users = store.collection("user")
        >>> await users.insert_one({"name": "Mike"})
    """

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the backend.

        Raises:
            StoreConnectionError: If connection fails
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""
        ...

    @abstractmethod
    def collection(self, name: str) -> DocumentCollection:
        """Get a collection by name.

        Raises:
            StoreConnectionError: If not connected
        """
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether currently connected to the backend."""
        ...


def create_store(settings: OdmSettings, **client_options: Any) -> DocumentStore:
    """Factory function to create a document store from settings.

    Args:
        settings: Store settings
        **client_options: Extra driver options, overriding the settings

    Returns:
        Appropriate DocumentStore implementation (not yet connected)

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryDocumentStore
    from .mongo import MongoDocumentStore

    if settings.backend == StoreBackend.MONGO:
        options = settings.client_options()
        options.update(client_options)
        return MongoDocumentStore(settings.url, database=settings.database, **options)
    elif settings.backend == StoreBackend.MEMORY:
        return InMemoryDocumentStore()
    else:
        raise ValueError(f"Unsupported store backend: {settings.backend}")

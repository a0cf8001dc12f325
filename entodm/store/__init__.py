"""
Document store abstraction for entodm.

This module provides a pluggable store backend interface supporting:
- MongoDB through pymongo's asyncio client (production)
- In-memory (for testing and local development)

The CRUD engine only ever talks to the DocumentStore/DocumentCollection
protocols; backends are interchangeable.

Invariants:
    - Operations on an established store propagate backend failures verbatim
    - Operations on a store that is not connected raise StoreConnectionError

How to change safely:
    - New backends must implement the DocumentStore protocol
    - Run tests/integration against the new backend as well as in-memory
"""

from .base import (
    DocumentCollection,
    DocumentStore,
    StoreConnectionError,
    StoreError,
    create_store,
)
from .memory import InMemoryDocumentStore
from .mongo import MongoDocumentStore

__all__ = [
    # Protocol and types
    "DocumentStore",
    "DocumentCollection",
    "StoreError",
    "StoreConnectionError",
    # Factory
    "create_store",
    # Implementations
    "MongoDocumentStore",
    "InMemoryDocumentStore",
]

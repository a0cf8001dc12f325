"""
entodm - Relation-aware object-document mapper for MongoDB.

This package maps pydantic models onto MongoDB collections:
- Entity base class with create/find/update/delete operations
- Relations between entity types, resolved with $lookup on read and
  cascaded on write
- Fluent, caller-owned query modifiers (take, skip, sort_by)
- Pluggable document store (MongoDB or in-memory)

Example:
    >>> import entodm
    >>> from entodm import Entity, relation
    >>>
    >>> class Author(Entity):
    ...     name: str | None = None
    >>>
    >>> @relation("author", "author_id", Author)
    ... class Post(Entity):
    ...     title: str | None = None
    ...     author: Author | None = None
    >>>
    >>> await entodm.init("mongodb://localhost:27017/blog")
    >>> post = await Post(title="Hello", author=Author(name="Mike")).create()
    >>> posts = await Post.sort_by({"title": "ASC"}).take(10).find()

Invariants:
    - One active store per process, installed by init()
    - Relations are registered at type-definition time
    - A missing document is None, never an error

Version: 1.0.0
"""

import logging

from ._version import __version__
from .config import OdmSettings, StoreBackend, setup_logging
from .connection import close, get_store, init, is_initialized
from .entity import Entity
from .errors import (
    ConfigurationError,
    DuplicateRegistrationError,
    InvalidIdentifierError,
    NotInitializedError,
    OdmError,
    RegistryFrozenError,
    ValidationError,
)
from .query import Query, QueryOptions
from .registry import (
    EntityRegistry,
    get_registry,
    register_relation,
    relation,
)
from .schema import Cardinality, RelationDescriptor
from .store import (
    DocumentCollection,
    DocumentStore,
    InMemoryDocumentStore,
    MongoDocumentStore,
    StoreConnectionError,
    StoreError,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    # Version
    "__version__",
    # Connection
    "init",
    "close",
    "get_store",
    "is_initialized",
    # Entities
    "Entity",
    "Query",
    "QueryOptions",
    # Relations
    "relation",
    "register_relation",
    "get_registry",
    "EntityRegistry",
    "RelationDescriptor",
    "Cardinality",
    # Stores
    "DocumentStore",
    "DocumentCollection",
    "MongoDocumentStore",
    "InMemoryDocumentStore",
    # Config
    "OdmSettings",
    "StoreBackend",
    "setup_logging",
    # Errors
    "OdmError",
    "ConfigurationError",
    "NotInitializedError",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    "ValidationError",
    "InvalidIdentifierError",
    "StoreError",
    "StoreConnectionError",
]

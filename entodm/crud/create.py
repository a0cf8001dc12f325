"""
Create operations.

Invariants:
    - A created entity holds its new identifier as a hex string
    - Related instances that already have an identifier are referenced,
      not inserted again
    - create_many is one store round-trip and never cascades
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from bson import ObjectId

from ..identifiers import ID_FIELD, coerce_object_id, to_hex
from .base import collection_for, prepare_document

if TYPE_CHECKING:
    from ..entity import Entity

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Entity")


async def create_entity(entity: E, cascade: bool = True, visited: set[int] | None = None) -> E:
    """Insert entity, creating populated related entities first.

    Args:
        entity: Entity to insert
        cascade: Create related entities and store their references
        visited: In-memory instances already handled by this cascade

    Returns:
        The same entity, now holding its identifier

    Raises:
        InvalidIdentifierError: If entity carries a malformed id
    """
    visited = set() if visited is None else visited
    visited.add(id(entity))

    document = await prepare_document(
        entity, cascade=cascade, persist=_create_related, visited=visited
    )
    if entity.id is not None:
        document[ID_FIELD] = coerce_object_id(entity.id)

    collection = collection_for(type(entity))
    inserted_id = await collection.insert_one(document)
    entity.id = to_hex(inserted_id)

    logger.debug(
        "Entity created",
        extra={"collection": collection.name, "id": entity.id, "cascade": cascade},
    )
    return entity


async def _create_related(related: Entity, visited: set[int]) -> None:
    if related.id is not None:
        visited.add(id(related))
        return
    await create_entity(related, True, visited)


async def create_many(entity_type: type[E], items: Iterable[Mapping[str, Any]]) -> list[E]:
    """Insert plain property maps in one batch.

    Identifiers are generated before the insert so each returned entity
    holds the id of its own document. Relation properties are not
    cascaded; items should carry reference keys directly.

    Args:
        entity_type: Entity class of the items
        items: Property maps (an "id" key, if present, is used as _id)

    Returns:
        Entities in input order
    """
    documents: list[dict[str, Any]] = []
    for item in items:
        document = dict(item)
        identifier = document.pop("id", None)
        if identifier is not None:
            document[ID_FIELD] = coerce_object_id(identifier)
        document.setdefault(ID_FIELD, ObjectId())
        documents.append(document)

    if not documents:
        return []

    collection = collection_for(entity_type)
    await collection.insert_many(documents)

    logger.debug(
        "Entities created",
        extra={"collection": collection.name, "count": len(documents)},
    )
    return [entity_type.from_document(document) for document in documents]

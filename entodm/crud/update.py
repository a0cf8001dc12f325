"""
Update operations.

Instance updates are upserts keyed on the entity identifier: the entity
document is $set onto the stored one, so keys the entity does not carry
keep their stored values.

Invariants:
    - update_entity never inserts when upsert is False
    - An entity without an id gets one only when the write succeeds
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from bson import ObjectId

from ..errors import InvalidIdentifierError
from ..identifiers import ID_FIELD, coerce_object_id, normalize_filter, to_hex
from . import read
from .base import collection_for, prepare_document

if TYPE_CHECKING:
    from ..entity import Entity

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Entity")


async def update_entity(
    entity: E,
    cascade: bool = True,
    upsert: bool = True,
    visited: set[int] | None = None,
) -> E:
    """Write entity's current state, updating populated relations first.

    Args:
        entity: Entity to write
        cascade: Update related entities and store their references
        upsert: Insert the document if no stored document has the id
        visited: In-memory instances already handled by this cascade

    Returns:
        The same entity (holding its id)

    Raises:
        InvalidIdentifierError: If the id is malformed, or missing while
            upsert is False
    """
    visited = set() if visited is None else visited
    visited.add(id(entity))

    if entity.id is not None:
        object_id = coerce_object_id(entity.id)
    elif upsert:
        object_id = ObjectId()
    else:
        raise InvalidIdentifierError(None)

    async def persist(related: Entity, seen: set[int]) -> None:
        await update_entity(related, True, upsert, seen)

    document = await prepare_document(entity, cascade=cascade, persist=persist, visited=visited)
    document.pop(ID_FIELD, None)

    collection = collection_for(type(entity))
    await collection.update_one({ID_FIELD: object_id}, document, upsert=upsert)
    entity.id = to_hex(object_id)

    logger.debug(
        "Entity updated",
        extra={"collection": collection.name, "id": entity.id, "cascade": cascade},
    )
    return entity


async def update_by_id(
    entity_type: type[E],
    identifier: Any,
    partial: Mapping[str, Any],
) -> E | None:
    """Load by id, merge partial onto it and write it back.

    Returns:
        The merged entity, or None if nothing has that id
    """
    entity = await read.find_one(entity_type, identifier)
    if entity is None:
        return None
    entity.merge(partial)
    return await update_entity(entity)


async def update_many(
    entity_type: type[Entity],
    filter: Any,
    partial: Mapping[str, Any],
) -> int:
    """Set partial on every matching document.

    Returns:
        Number of matching documents (all of which now hold partial)
    """
    values = {k: v for k, v in partial.items() if k not in ("id", ID_FIELD)}
    collection = collection_for(entity_type)
    matched = await collection.update_many(normalize_filter(filter), values)
    logger.debug(
        "Entities updated",
        extra={"collection": collection.name, "matched": matched},
    )
    return matched

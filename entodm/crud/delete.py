"""
Delete operations.

Cascading deletes walk populated relations depth-first and remove the
related entities before the owner. Documents referenced only through a
stored key, without an in-memory instance, are left alone.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from ..identifiers import normalize_filter
from .base import collection_for, relations_of

if TYPE_CHECKING:
    from ..entity import Entity

logger = logging.getLogger(__name__)


async def delete_entity(
    entity: Entity,
    cascade: bool = False,
    visited: set[int] | None = None,
) -> bool:
    """Delete entity, and with cascade its populated related entities.

    On success the entity's id is cleared.

    Returns:
        Whether the entity's own document was deleted
    """
    visited = set() if visited is None else visited
    visited.add(id(entity))

    if cascade:
        for descriptor in relations_of(type(entity)):
            for related in descriptor.related_entities(entity):
                if id(related) not in visited:
                    await delete_entity(related, True, visited)

    if entity.id is None:
        return False

    deleted = await delete_by_id(type(entity), entity.id)
    if deleted:
        entity.id = None
    return deleted


async def delete_by_id(entity_type: type[Entity], identifier: Any) -> bool:
    """Delete the document with the given id.

    Raises:
        InvalidIdentifierError: If the id is malformed
    """
    collection = collection_for(entity_type)
    deleted = await collection.delete_one(normalize_filter(identifier))
    logger.debug(
        "Entity deleted",
        extra={"collection": collection.name, "id": str(identifier), "deleted": deleted},
    )
    return deleted > 0


async def delete_many(entity_type: type[Entity], filter: Any) -> bool:
    """Delete every matching document.

    Returns:
        Whether at least one document was deleted
    """
    collection = collection_for(entity_type)
    deleted = await collection.delete_many(normalize_filter(filter))
    logger.debug(
        "Entities deleted",
        extra={"collection": collection.name, "deleted": deleted},
    )
    return deleted > 0

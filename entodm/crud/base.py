"""Shared lookups for the CRUD engine."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from ..connection import get_store
from ..registry import get_registry
from ..schema import RelationDescriptor
from ..store.base import DocumentCollection

if TYPE_CHECKING:
    from ..entity import Entity

# Persist callback used by cascading writes: (related, visited) -> awaitable
Persist = Callable[["Entity", set[int]], Awaitable[Any]]


def collection_for(entity_type: type[Entity]) -> DocumentCollection:
    """Store collection of a registered entity type.

    Raises:
        ConfigurationError: If the type is not registered
        NotInitializedError: If no store is active
    """
    name = get_registry().collection(entity_type)
    return get_store().collection(name)


def relations_of(entity_type: type[Entity]) -> list[RelationDescriptor]:
    """Relation descriptors declared by entity_type."""
    return get_registry().relations(entity_type)


async def prepare_document(
    entity: Entity,
    *,
    cascade: bool,
    persist: Persist,
    visited: set[int],
) -> dict[str, Any]:
    """Build the document written for entity.

    Relation properties never reach the document. With cascade, every
    populated related instance not yet visited is persisted first through
    persist, and its reference is written under the relation's local key.
    Without cascade the relation is dropped and any stored reference is
    left as it was.
    """
    document = entity.to_document()
    if not cascade:
        return document

    for descriptor in relations_of(type(entity)):
        related = descriptor.related_entities(entity)
        if not related:
            continue
        for item in related:
            if id(item) not in visited:
                await persist(item, visited)

        reference = descriptor.reference_value(related)
        if descriptor.many:
            reference = [r for r in reference if r is not None]
            if not reference:
                continue
        elif reference is None:
            # Related instance is mid-cascade further up and has no id yet
            continue
        document[descriptor.local_key] = reference
    return document

"""
Read operations.

Without relation resolution (or for types without relations) reads go
straight to the store. With it, they run one aggregation pipeline:

    $match -> $sort -> $skip -> $limit -> per relation: cast, $lookup

Pagination runs before the joins so only the returned page is joined.
Joined arrays are then collapsed: ONE relations hold the first match or
None, MANY relations hold a list.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from ..identifiers import normalize_filter
from ..schema import RelationDescriptor
from .base import collection_for, relations_of

if TYPE_CHECKING:
    from ..entity import Entity
    from ..query import QueryOptions

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="Entity")


def build_pipeline(
    filter: dict[str, Any],
    options: QueryOptions | None,
    relations: list[RelationDescriptor],
) -> list[dict[str, Any]]:
    """Aggregation pipeline for a relation-resolving read."""
    pipeline: list[dict[str, Any]] = [{"$match": filter}]
    if options is not None:
        if options.sort:
            pipeline.append({"$sort": options.sort_spec})
        if options.offset:
            pipeline.append({"$skip": options.offset})
        if options.limit:
            pipeline.append({"$limit": options.limit})
    for descriptor in relations:
        pipeline.extend(descriptor.pipeline_stages())
    return pipeline


def hydrate(entity_type: type[E], document: dict[str, Any], relations: list[RelationDescriptor]) -> E:
    """Typed entity from a joined document."""
    for descriptor in relations:
        document[descriptor.property] = descriptor.resolve(document.get(descriptor.property))
    return entity_type.from_document(document)


async def find(
    entity_type: type[E],
    filter: Any = None,
    options: QueryOptions | None = None,
    resolve_relations: bool = True,
) -> list[E]:
    """Find every matching entity.

    Args:
        entity_type: Entity class queried
        filter: Filter mapping or identifier (None = everything)
        options: Pagination and sort
        resolve_relations: Join related entities into relation properties

    Returns:
        Matching entities (possibly empty)
    """
    payload = normalize_filter(filter)
    relations = relations_of(entity_type) if resolve_relations else []
    collection = collection_for(entity_type)

    if relations:
        pipeline = build_pipeline(payload, options, relations)
        documents = await collection.aggregate(pipeline)
        logger.debug(
            "Pipeline read",
            extra={"collection": collection.name, "stages": len(pipeline), "count": len(documents)},
        )
        return [hydrate(entity_type, doc, relations) for doc in documents]

    if options is None:
        documents = await collection.find(payload)
    else:
        documents = await collection.find(
            payload,
            limit=options.limit,
            skip=options.offset,
            sort=options.sort_spec or None,
        )
    logger.debug("Direct read", extra={"collection": collection.name, "count": len(documents)})
    return [entity_type.from_document(doc) for doc in documents]


async def find_one(
    entity_type: type[E],
    filter_or_id: Any = None,
    options: QueryOptions | None = None,
    resolve_relations: bool = True,
) -> E | None:
    """First matching entity, or None.

    Sort and skip in options are honored; any limit is replaced by 1.

    Raises:
        InvalidIdentifierError: If a bare identifier is malformed
    """
    payload = normalize_filter(filter_or_id)
    relations = relations_of(entity_type) if resolve_relations else []
    plain = options is None or (not options.sort and not options.offset)

    if not relations and plain:
        collection = collection_for(entity_type)
        document = await collection.find_one(payload)
        return entity_type.from_document(document) if document is not None else None

    from ..query import QueryOptions

    base = options or QueryOptions()
    page = QueryOptions(limit=1, offset=base.offset, sort=base.sort)
    results = await find(entity_type, payload, page, resolve_relations)
    return results[0] if results else None


async def count(entity_type: type[Entity], filter: Any = None) -> int:
    """Number of matching documents."""
    return await collection_for(entity_type).count_documents(normalize_filter(filter))

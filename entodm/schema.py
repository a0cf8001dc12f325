"""
Relation metadata for entodm.

This module provides the static description of how one entity type
references another:
- Cardinality: one or many
- RelationDescriptor: one relation-bearing property of an owner type

A descriptor is built once, when the relation is registered, and is shared
read-only by every instance and every query against the owner type. It
carries everything the CRUD engine needs to cascade through the relation
without inspecting values at call time: which instances are populated,
what reference value to store, and which pipeline stages resolve it.

Invariants:
    - Descriptors are frozen after construction
    - related_collection is resolved at registration, never per call
    - cardinality follows the declared annotation of the property

Example:
    >>> descriptor = RelationDescriptor(
    ...     property="author",
    ...     local_key="author_id",
    ...     related_type=Author,
    ...     related_collection="author",
    ...     cardinality=Cardinality.ONE,
    ... )
"""

from __future__ import annotations

import collections.abc
import re
import types
import typing
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from .identifiers import ID_FIELD, coerce_object_id

if TYPE_CHECKING:
    from .entity import Entity

_SEQUENCE_ORIGINS = (
    list,
    tuple,
    set,
    frozenset,
    collections.abc.Sequence,
    collections.abc.MutableSequence,
    collections.abc.Set,
    collections.abc.Iterable,
)

_SEQUENCE_TEXT = re.compile(
    r"(?:^|[\[|,\s.])(?:list|List|tuple|Tuple|set|Set|frozenset|FrozenSet|Sequence|MutableSequence|Iterable)\["
)


class Cardinality(Enum):
    """How many related entities a relation holds."""

    ONE = "one"
    MANY = "many"


def infer_cardinality(annotation: Any) -> Cardinality:
    """Infer cardinality from a declared field annotation.

    Optional wrappers are stripped first; a list, tuple, set or sequence
    annotation means MANY, anything else means ONE.

    Example:
        >>> infer_cardinality(Optional[Author])
        <Cardinality.ONE: 'one'>
        >>> infer_cardinality(list[Track])
        <Cardinality.MANY: 'many'>
    """
    if isinstance(annotation, (str, typing.ForwardRef)):
        text = annotation if isinstance(annotation, str) else annotation.__forward_arg__
        return Cardinality.MANY if _SEQUENCE_TEXT.search(text) else Cardinality.ONE
    origin = typing.get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        if len(args) == 1:
            return infer_cardinality(args[0])
        return Cardinality.ONE
    if annotation in _SEQUENCE_ORIGINS or origin in _SEQUENCE_ORIGINS:
        return Cardinality.MANY
    return Cardinality.ONE


@dataclass(frozen=True)
class RelationDescriptor:
    """One relation from an owner entity type to a related type.

    Attributes:
        property: Owner attribute holding the in-memory related object(s)
        local_key: Document key on the owner holding the reference value
        related_type: Related entity class
        related_collection: Collection of the related type
        cardinality: ONE or MANY
        foreign_key: Document key on the related side the reference matches
        reference_is_identifier: Store the reference as an ObjectId
    """

    property: str
    local_key: str
    related_type: type[Entity]
    related_collection: str
    cardinality: Cardinality = Cardinality.ONE
    foreign_key: str = ID_FIELD
    reference_is_identifier: bool = True

    def __post_init__(self) -> None:
        """Validate descriptor."""
        if not self.property:
            raise ValueError("Relation property cannot be empty")
        if not self.local_key:
            raise ValueError(f"local_key cannot be empty for relation '{self.property}'")
        if self.local_key == self.property:
            raise ValueError(
                f"local_key must differ from the property name for relation '{self.property}'"
            )

    @property
    def many(self) -> bool:
        """Whether the relation holds a sequence of entities."""
        return self.cardinality is Cardinality.MANY

    # Cascade capability

    def related_entities(self, owner: Entity) -> list[Entity]:
        """Populated related instances currently held by owner."""
        value = getattr(owner, self.property, None)
        if value is None:
            return []
        if self.many:
            if isinstance(value, (str, bytes, collections.abc.Mapping)):
                return []
            if not isinstance(value, collections.abc.Iterable):
                return []
            return [v for v in value if isinstance(v, self.related_type)]
        if isinstance(value, self.related_type):
            return [value]
        return []

    def is_populated(self, owner: Entity) -> bool:
        """Whether owner holds at least one related instance."""
        return bool(self.related_entities(owner))

    def reference_for(self, related: Entity) -> Any:
        """Value stored under local_key to point at one related entity."""
        if self.foreign_key == ID_FIELD:
            value = related.id
        else:
            value = getattr(related, self.foreign_key, None)
        if value is None or not self.reference_is_identifier:
            return value
        return coerce_object_id(value, self.local_key)

    def reference_value(self, related: list[Entity]) -> Any:
        """Reference value for the whole relation (a list for MANY)."""
        if self.many:
            return [self.reference_for(entity) for entity in related]
        return self.reference_for(related[0]) if related else None

    # Read side

    @property
    def join_field(self) -> str:
        """Scratch field holding the cast reference during a read."""
        return f"_ref_{self.property}"

    def cast_stage(self) -> dict[str, Any] | None:
        """Pipeline stage casting the stored reference to ObjectId.

        The cast lands in join_field; the stored local_key is left as is.
        """
        if not self.reference_is_identifier:
            return None
        source = f"${self.local_key}"
        if self.many:
            expression: dict[str, Any] = {
                "$map": {"input": source, "as": "ref", "in": {"$toObjectId": "$$ref"}}
            }
        else:
            expression = {"$toObjectId": source}
        return {"$set": {self.join_field: expression}}

    def lookup_stage(self) -> dict[str, Any]:
        """Left-outer-join stage materializing matches under property."""
        local_field = self.join_field if self.reference_is_identifier else self.local_key
        return {
            "$lookup": {
                "from": self.related_collection,
                "localField": local_field,
                "foreignField": self.foreign_key,
                "as": self.property,
            }
        }

    def pipeline_stages(self) -> list[dict[str, Any]]:
        """Cast (if needed), the join, then removal of the scratch field."""
        cast = self.cast_stage()
        if cast is None:
            return [self.lookup_stage()]
        return [cast, self.lookup_stage(), {"$unset": self.join_field}]

    def resolve(self, joined: Any) -> Any:
        """Turn the joined documents into typed related instance(s).

        ONE collapses to the first match (or None); MANY stays a list.
        """
        if joined is None:
            return [] if self.many else None
        if not isinstance(joined, list):
            joined = [joined]
        if self.many:
            return [self.related_type.from_document(doc) for doc in joined]
        if not joined:
            return None
        return self.related_type.from_document(joined[0])

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "property": self.property,
            "local_key": self.local_key,
            "related_type": self.related_type.__name__,
            "related_collection": self.related_collection,
            "cardinality": self.cardinality.value,
            "foreign_key": self.foreign_key,
            "reference_is_identifier": self.reference_is_identifier,
        }

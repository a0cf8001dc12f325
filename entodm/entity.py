"""
Entity base class for entodm.

Subclass Entity to declare a persistent type. Fields are ordinary pydantic
fields; undeclared keys read from the store are kept as extras so a
document survives a load/save round-trip intact.

Example:
    >>> class Author(Entity):
    ...     name: str | None = None
    >>>
    >>> @relation("author", "author_id", Author)
    ... class Post(Entity):
    ...     title: str | None = None
    ...     author: Author | None = None
    >>>
    >>> post = await Post(title="Hello", author=Author(name="Mike")).create()
    >>> again = await Post.find_one(post.id)
    >>> again.author.name
    'Mike'

Invariants:
    - id is None until the entity is persisted, then the 24-char hex form
      of its document's _id
    - Relation properties and other entity-valued fields are never written
      into the owner's document
    - Every subclass is registered in the global registry when defined
"""

from __future__ import annotations

import typing
from collections.abc import Iterable, Mapping
from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict

from .crud import create, delete, read, update
from .identifiers import ID_FIELD, to_hex
from .query import Query
from .registry import get_registry
from .schema import RelationDescriptor

E = TypeVar("E", bound="Entity")


def _holds_entity(value: Any) -> bool:
    if isinstance(value, Entity):
        return True
    if isinstance(value, (list, tuple, set, frozenset)):
        return any(isinstance(v, Entity) for v in value)
    return False


def _mentions_entity(annotation: Any) -> bool:
    if isinstance(annotation, type) and issubclass(annotation, Entity):
        return True
    return any(_mentions_entity(arg) for arg in typing.get_args(annotation))


class Entity(BaseModel):
    """Base class for persistent entity types.

    Attributes:
        id: Hex identifier, None until persisted
        __collection__: Collection name override (defaults to the
            lower-cased class name)
    """

    model_config = ConfigDict(extra="allow", arbitrary_types_allowed=True)

    __collection__: ClassVar[str | None] = None

    id: str | None = None

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        get_registry().register_entity(cls)

    # Metadata

    @classmethod
    def collection_name(cls) -> str:
        """Collection the type is stored in."""
        return get_registry().collection(cls)

    @classmethod
    def relations(cls) -> list[RelationDescriptor]:
        """Relation descriptors declared on the type."""
        return get_registry().relations(cls)

    # Document mapping

    def to_document(self) -> dict[str, Any]:
        """Store document for this entity, without _id.

        Relation properties, fields holding entities and computed fields
        are left out.
        """
        cls = type(self)
        exclude = {"id"}
        exclude.update(d.property for d in cls.relations())
        exclude.update(cls.model_computed_fields)
        exclude.update(
            name for name, info in cls.model_fields.items() if _mentions_entity(info.annotation)
        )
        for name in [*cls.model_fields, *(self.model_extra or {})]:
            if name not in exclude and _holds_entity(getattr(self, name, None)):
                exclude.add(name)
        return self.model_dump(exclude=exclude)

    @classmethod
    def from_document(cls: type[E], document: Mapping[str, Any]) -> E:
        """Entity from a store document (its _id becomes id)."""
        data = dict(document)
        data["id"] = to_hex(data.pop(ID_FIELD, None))
        return cls.model_validate(data)

    def merge(self, values: Mapping[str, Any]) -> None:
        """Assign each key of values as an attribute (identifiers ignored)."""
        for key, value in values.items():
            if key in ("id", ID_FIELD):
                continue
            setattr(self, key, value)

    # Modifiers

    @classmethod
    def query(cls: type[E]) -> Query[E]:
        """Unmodified query for the type."""
        return Query(cls)

    @classmethod
    def take(cls: type[E], amount: int | None) -> Query[E]:
        return Query(cls).take(amount)

    @classmethod
    def skip(cls: type[E], amount: int | None) -> Query[E]:
        return Query(cls).skip(amount)

    @classmethod
    def sort_by(cls: type[E], sort: Mapping[str, Any]) -> Query[E]:
        return Query(cls).sort_by(sort)

    # Reads

    @classmethod
    async def find(cls: type[E], filter: Any = None, resolve_relations: bool = True) -> list[E]:
        """Every entity matching filter (all of them if None)."""
        return await read.find(cls, filter, None, resolve_relations)

    @classmethod
    async def find_one(
        cls: type[E], filter_or_id: Any = None, resolve_relations: bool = True
    ) -> E | None:
        """First entity matching a filter or identifier, or None."""
        return await read.find_one(cls, filter_or_id, None, resolve_relations)

    @classmethod
    async def count(cls, filter: Any = None) -> int:
        return await read.count(cls, filter)

    # Class-level writes

    @classmethod
    async def create_many(cls: type[E], items: Iterable[Mapping[str, Any]]) -> list[E]:
        """Insert plain property maps in one batch (no cascade)."""
        return await create.create_many(cls, items)

    @classmethod
    async def update_by_id(
        cls: type[E], identifier: Any, partial: Mapping[str, Any]
    ) -> E | None:
        """Merge partial onto the stored entity and write it back."""
        return await update.update_by_id(cls, identifier, partial)

    @classmethod
    async def update_many(cls, filter: Any, partial: Mapping[str, Any]) -> int:
        """Set partial on every match; returns the matched count."""
        return await update.update_many(cls, filter, partial)

    @classmethod
    async def delete_by_id(cls, identifier: Any) -> bool:
        return await delete.delete_by_id(cls, identifier)

    @classmethod
    async def delete_many(cls, filter: Any) -> bool:
        """Delete every match; True if anything was deleted."""
        return await delete.delete_many(cls, filter)

    # Instance writes

    async def create(self: E, cascade: bool = True) -> E:
        """Insert this entity.

        Args:
            cascade: Create populated related entities first and store
                their references; otherwise relations are dropped
        """
        return await create.create_entity(self, cascade)

    async def update(self: E, cascade: bool = True, upsert: bool = True) -> E:
        """Write this entity's state by id.

        Args:
            cascade: Update populated related entities first
            upsert: Insert if no stored document has the id
        """
        return await update.update_entity(self, cascade, upsert)

    async def delete(self, cascade: bool = False) -> bool:
        """Delete this entity.

        Args:
            cascade: Also delete populated related entities

        Returns:
            Whether this entity's document was deleted
        """
        return await delete.delete_entity(self, cascade)

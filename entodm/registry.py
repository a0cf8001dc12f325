"""
Entity registry for entodm.

This module provides the process-wide registry of:
- Entity types and their collection names
- Relation descriptors, looked up by owner type

Entity classes register themselves when they are defined. Relations are
registered right after, at type-definition time, with register_relation()
or the @relation class decorator. The registry can be frozen at startup to
prevent runtime modifications.

Example:
    >>> class Author(Entity):
    ...     name: str | None = None
    >>>
    >>> @relation("author", "author_id", Author)
    ... class Post(Entity):
    ...     title: str | None = None
    ...     author: Author | None = None
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, TypeVar

from .errors import ConfigurationError, DuplicateRegistrationError, RegistryFrozenError
from .identifiers import ID_FIELD
from .schema import RelationDescriptor, infer_cardinality

if TYPE_CHECKING:
    from .entity import Entity

logger = logging.getLogger(__name__)

E = TypeVar("E", bound="type[Entity]")

# Global registry
_global_registry: EntityRegistry | None = None
_registry_lock = threading.Lock()


@dataclass
class EntityTypeDef:
    """Registered entity type.

    Attributes:
        entity_type: The Entity subclass
        collection: Collection the type is stored in
        relations: Relation descriptors, in registration order
    """

    entity_type: type[Entity]
    collection: str
    relations: list[RelationDescriptor] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.entity_type.__name__

    def get_relation(self, property_name: str) -> RelationDescriptor | None:
        """Get relation by owner property name."""
        for descriptor in self.relations:
            if descriptor.property == property_name:
                return descriptor
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "collection": self.collection,
            "relations": [r.to_dict() for r in self.relations],
        }


def collection_name_for(entity_type: type) -> str:
    """Collection name: __collection__ if the class sets one, else its lower-cased name."""
    override = entity_type.__dict__.get("__collection__")
    if override:
        return str(override)
    return entity_type.__name__.lower()


class EntityRegistry:
    """Registry of entity types and their relations.

    Example:
        >>> registry = EntityRegistry()
        >>> registry.register_entity(Author)
        >>> registry.register_entity(Post)
        >>> registry.register_relation(Post, "author", "author_id", Author)
        >>> registry.freeze()
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._types: dict[type, EntityTypeDef] = {}
        self._frozen = False
        self._fingerprint: str | None = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether registry is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> str | None:
        """Registry fingerprint (available after freeze)."""
        return self._fingerprint

    def register_entity(self, entity_type: type[Entity]) -> EntityTypeDef:
        """Register an entity type.

        Re-registering the same class returns its existing definition.

        Raises:
            RegistryFrozenError: If registry is frozen
        """
        with self._lock:
            existing = self._types.get(entity_type)
            if existing is not None:
                return existing
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register '{entity_type.__name__}': registry is frozen"
                )

            type_def = EntityTypeDef(
                entity_type=entity_type,
                collection=collection_name_for(entity_type),
            )
            self._types[entity_type] = type_def

        logger.debug(
            "Entity type registered",
            extra={"entity": entity_type.__name__, "collection": type_def.collection},
        )
        return type_def

    def register_relation(
        self,
        owner_type: type[Entity],
        property_name: str,
        local_key: str,
        related_type: type[Entity],
        foreign_key: str = ID_FIELD,
        reference_is_identifier: bool = True,
    ) -> RelationDescriptor:
        """Register a relation on an owner type.

        Args:
            owner_type: Entity type declaring the relation
            property_name: Owner field holding the related object(s)
            local_key: Document key holding the reference value
            related_type: Related entity type
            foreign_key: Key on the related document the reference matches
            reference_is_identifier: Coerce the reference to ObjectId

        Returns:
            The new RelationDescriptor

        Raises:
            ConfigurationError: If either type is not a registered entity
                type or the owner does not declare property_name
            DuplicateRegistrationError: If property_name already has a relation
            RegistryFrozenError: If registry is frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(
                    f"Cannot register relation '{property_name}': registry is frozen"
                )

            owner_def = self._types.get(owner_type)
            if owner_def is None:
                raise ConfigurationError(
                    f"'{getattr(owner_type, '__name__', owner_type)}' is not a registered entity type",
                    details={"property": property_name},
                )
            related_def = self._types.get(related_type)
            if related_def is None:
                raise ConfigurationError(
                    f"Relation '{owner_def.name}.{property_name}' targets "
                    f"'{getattr(related_type, '__name__', related_type)}', "
                    "which is not a registered entity type",
                    details={"owner": owner_def.name, "property": property_name},
                )

            if not getattr(owner_type, "__pydantic_complete__", True):
                # Forward references to the related type can be resolved now
                owner_type.model_rebuild(
                    raise_errors=False,
                    _types_namespace={related_type.__name__: related_type},
                )
            fields = getattr(owner_type, "model_fields", {})
            if property_name not in fields:
                raise ConfigurationError(
                    f"'{owner_def.name}' has no declared field '{property_name}' for a relation",
                    details={"owner": owner_def.name, "property": property_name},
                )

            if owner_def.get_relation(property_name) is not None:
                raise DuplicateRegistrationError(
                    f"Relation '{owner_def.name}.{property_name}' is already registered",
                    type_name=owner_def.name,
                )

            try:
                descriptor = RelationDescriptor(
                    property=property_name,
                    local_key=local_key,
                    related_type=related_type,
                    related_collection=related_def.collection,
                    cardinality=infer_cardinality(fields[property_name].annotation),
                    foreign_key=foreign_key,
                    reference_is_identifier=reference_is_identifier,
                )
            except ValueError as e:
                raise ConfigurationError(str(e), details={"owner": owner_def.name}) from e

            owner_def.relations.append(descriptor)

        logger.debug(
            "Relation registered",
            extra={
                "owner": owner_def.name,
                "property": property_name,
                "related": related_def.name,
                "cardinality": descriptor.cardinality.value,
            },
        )
        return descriptor

    def get(self, entity_type: type[Entity]) -> EntityTypeDef:
        """Get the definition of a registered type.

        Raises:
            ConfigurationError: If the type is not registered
        """
        type_def = self._types.get(entity_type)
        if type_def is None:
            raise ConfigurationError(
                f"'{getattr(entity_type, '__name__', entity_type)}' is not a registered entity type"
            )
        return type_def

    def is_registered(self, entity_type: type) -> bool:
        """Whether entity_type is a registered entity type."""
        return entity_type in self._types

    def relations(self, entity_type: type[Entity]) -> list[RelationDescriptor]:
        """Relations declared by entity_type (empty if none)."""
        type_def = self._types.get(entity_type)
        if type_def is None:
            return []
        return list(type_def.relations)

    def collection(self, entity_type: type[Entity]) -> str:
        """Collection name of a registered type."""
        return self.get(entity_type).collection

    def entity_types(self) -> Iterator[EntityTypeDef]:
        """Iterate over all registered types."""
        yield from list(self._types.values())

    def freeze(self) -> str:
        """Freeze registry and compute fingerprint.

        Returns:
            Registry fingerprint

        Raises:
            RegistryFrozenError: If already frozen
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Registry is already frozen")

            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            return self._fingerprint

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return f"sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "entity_types": sorted(
                (t.to_dict() for t in self._types.values()),
                key=lambda d: (d["collection"], d["name"]),
            ),
        }


def get_registry() -> EntityRegistry:
    """Get the global entity registry."""
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = EntityRegistry()
        return _global_registry


def register_relation(
    owner_type: type[Entity],
    property_name: str,
    local_key: str,
    related_type: type[Entity],
    foreign_key: str = ID_FIELD,
    reference_is_identifier: bool = True,
) -> RelationDescriptor:
    """Register a relation in the global registry."""
    return get_registry().register_relation(
        owner_type,
        property_name,
        local_key,
        related_type,
        foreign_key=foreign_key,
        reference_is_identifier=reference_is_identifier,
    )


def relation(
    property_name: str,
    local_key: str,
    related_type: type[Entity],
    foreign_key: str = ID_FIELD,
    reference_is_identifier: bool = True,
) -> Callable[[E], E]:
    """Class decorator form of register_relation().

    Example:
        >>> @relation("author", "author_id", Author)
        ... class Post(Entity):
        ...     author: Author | None = None
    """

    def decorate(owner_type: E) -> E:
        register_relation(
            owner_type,
            property_name,
            local_key,
            related_type,
            foreign_key=foreign_key,
            reference_is_identifier=reference_is_identifier,
        )
        return owner_type

    return decorate


def reset_registry() -> None:
    """Reset the global registry (for testing only)."""
    global _global_registry
    with _registry_lock:
        _global_registry = None

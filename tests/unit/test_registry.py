"""
Unit tests for the entity registry.

Tests cover:
- Entity type registration and collection names
- Relation registration and validation
- Registry freezing and fingerprints
- Global registry and @relation decorator
"""

import pytest

from entodm.entity import Entity
from entodm.errors import (
    ConfigurationError,
    DuplicateRegistrationError,
    RegistryFrozenError,
)
from entodm.registry import EntityRegistry, collection_name_for, get_registry, relation
from entodm.schema import Cardinality


class Publisher(Entity):
    name: str | None = None


class Magazine(Entity):
    __collection__ = "magazines"

    title: str | None = None
    publisher: Publisher | None = None
    contributors: list[Publisher] = []


class NotAnEntity:
    pass


class TestEntityRegistration:
    """Tests for entity type registration."""

    @pytest.fixture
    def registry(self):
        reg = EntityRegistry()
        reg.register_entity(Publisher)
        reg.register_entity(Magazine)
        return reg

    def test_collection_defaults_to_lowercase_name(self, registry):
        assert registry.collection(Publisher) == "publisher"

    def test_collection_override(self, registry):
        assert registry.collection(Magazine) == "magazines"

    def test_override_not_inherited(self):
        """A subclass gets its own collection name."""

        class Special(Magazine):
            pass

        assert collection_name_for(Special) == "special"

    def test_register_twice_is_idempotent(self, registry):
        first = registry.get(Publisher)
        assert registry.register_entity(Publisher) is first

    def test_unknown_type(self, registry):
        with pytest.raises(ConfigurationError):
            registry.get(NotAnEntity)
        assert registry.relations(NotAnEntity) == []
        assert not registry.is_registered(NotAnEntity)

    def test_entity_types(self, registry):
        names = {t.name for t in registry.entity_types()}
        assert names == {"Publisher", "Magazine"}


class TestRelationRegistration:
    """Tests for relation registration."""

    @pytest.fixture
    def registry(self):
        reg = EntityRegistry()
        reg.register_entity(Publisher)
        reg.register_entity(Magazine)
        return reg

    def test_register_one(self, registry):
        descriptor = registry.register_relation(Magazine, "publisher", "publisher_id", Publisher)
        assert descriptor.cardinality is Cardinality.ONE
        assert descriptor.related_collection == "publisher"
        assert registry.relations(Magazine) == [descriptor]
        assert registry.get(Magazine).get_relation("publisher") is descriptor

    def test_register_many(self, registry):
        """Cardinality comes from the list annotation."""
        descriptor = registry.register_relation(
            Magazine, "contributors", "contributor_ids", Publisher
        )
        assert descriptor.cardinality is Cardinality.MANY

    def test_relations_keep_registration_order(self, registry):
        registry.register_relation(Magazine, "contributors", "contributor_ids", Publisher)
        registry.register_relation(Magazine, "publisher", "publisher_id", Publisher)
        assert [d.property for d in registry.relations(Magazine)] == ["contributors", "publisher"]

    def test_duplicate_relation(self, registry):
        registry.register_relation(Magazine, "publisher", "publisher_id", Publisher)
        with pytest.raises(DuplicateRegistrationError):
            registry.register_relation(Magazine, "publisher", "other_id", Publisher)

    def test_related_type_must_be_registered(self, registry):
        with pytest.raises(ConfigurationError):
            registry.register_relation(Magazine, "publisher", "publisher_id", NotAnEntity)

    def test_owner_must_be_registered(self, registry):
        with pytest.raises(ConfigurationError):
            registry.register_relation(NotAnEntity, "publisher", "publisher_id", Publisher)

    def test_property_must_be_declared(self, registry):
        with pytest.raises(ConfigurationError):
            registry.register_relation(Magazine, "editor", "editor_id", Publisher)

    def test_bad_local_key(self, registry):
        """Descriptor validation surfaces as ConfigurationError."""
        with pytest.raises(ConfigurationError):
            registry.register_relation(Magazine, "publisher", "publisher", Publisher)


class TestRegistryFreeze:
    """Tests for freezing."""

    def test_freeze_returns_fingerprint(self):
        reg = EntityRegistry()
        reg.register_entity(Publisher)
        fingerprint = reg.freeze()
        assert fingerprint.startswith("sha256:")
        assert reg.fingerprint == fingerprint
        assert reg.frozen

    def test_fingerprint_is_deterministic(self):
        a, b = EntityRegistry(), EntityRegistry()
        for reg in (a, b):
            reg.register_entity(Publisher)
            reg.register_entity(Magazine)
        assert a.freeze() == b.freeze()

    def test_frozen_rejects_changes(self):
        reg = EntityRegistry()
        reg.register_entity(Publisher)
        reg.register_entity(Magazine)
        reg.freeze()
        with pytest.raises(RegistryFrozenError):
            reg.register_entity(NotAnEntity)
        with pytest.raises(RegistryFrozenError):
            reg.register_relation(Magazine, "publisher", "publisher_id", Publisher)
        with pytest.raises(RegistryFrozenError):
            reg.freeze()


class TestGlobalRegistry:
    """Tests for automatic registration and the decorator."""

    def test_subclasses_register_themselves(self):
        assert get_registry().is_registered(Publisher)
        assert get_registry().collection(Magazine) == "magazines"

    def test_decorator_registers_relation(self):
        class Printer(Entity):
            name: str | None = None

        @relation("printer", "printer_id", Printer)
        class Leaflet(Entity):
            printer: Printer | None = None

        (descriptor,) = get_registry().relations(Leaflet)
        assert descriptor.property == "printer"
        assert descriptor.related_type is Printer
        assert Leaflet.relations() == [descriptor]

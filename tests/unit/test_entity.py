"""
Unit tests for the Entity base class.

Tests cover:
- Document mapping (to_document / from_document)
- Exclusion of relation and entity-valued properties
- Extras round-trip
- Metadata helpers
"""

import datetime

from bson import ObjectId
from pydantic import BaseModel, computed_field

from entodm.entity import Entity
from entodm.registry import relation


class Address(BaseModel):
    city: str
    zip: str | None = None


class Owner(Entity):
    name: str | None = None


@relation("owner", "owner_id", Owner)
class Boat(Entity):
    __collection__ = "boats"

    name: str | None = None
    length: float = 0.0
    home: Address | None = None
    launched: datetime.datetime | None = None
    owner: Owner | None = None
    crew: list[Owner] = []

    @computed_field
    @property
    def label(self) -> str:
        return (self.name or "").upper()


class TestToDocument:
    """Tests for to_document."""

    def test_plain_fields(self):
        launched = datetime.datetime(2020, 5, 1)
        boat = Boat(name="Wave", length=7.5, home=Address(city="Kiel"), launched=launched)

        assert boat.to_document() == {
            "name": "Wave",
            "length": 7.5,
            "home": {"city": "Kiel", "zip": None},
            "launched": launched,
        }

    def test_id_never_written(self):
        boat = Boat(id=str(ObjectId()), name="Wave")
        document = boat.to_document()
        assert "id" not in document
        assert "_id" not in document

    def test_relation_and_entity_fields_excluded(self):
        """Relation properties and other entity-holding fields stay in memory."""
        boat = Boat(name="Wave", owner=Owner(name="Ann"), crew=[Owner(name="Bo")])
        document = boat.to_document()
        assert "owner" not in document
        assert "crew" not in document
        assert "label" not in document

    def test_extras_written(self):
        oid = ObjectId()
        boat = Boat(name="Wave", owner_id=oid, color="red")
        document = boat.to_document()
        assert document["owner_id"] == oid
        assert document["color"] == "red"


class TestFromDocument:
    """Tests for from_document."""

    def test_id_becomes_hex(self):
        oid = ObjectId()
        boat = Boat.from_document({"_id": oid, "name": "Wave"})
        assert boat.id == str(oid)
        assert boat.name == "Wave"

    def test_undeclared_keys_kept(self):
        """Unknown stored keys survive a load/save round-trip."""
        oid, owner_id = ObjectId(), ObjectId()
        boat = Boat.from_document({"_id": oid, "name": "Wave", "owner_id": owner_id, "rig": "sloop"})

        assert boat.rig == "sloop"
        assert boat.to_document()["owner_id"] == owner_id
        assert boat.to_document()["rig"] == "sloop"

    def test_missing_id(self):
        assert Boat.from_document({"name": "Wave"}).id is None


class TestMerge:
    """Tests for merge."""

    def test_assigns_fields_and_extras(self):
        boat = Boat(name="Wave")
        boat.merge({"name": "Gust", "color": "blue"})
        assert boat.name == "Gust"
        assert boat.color == "blue"

    def test_identifiers_ignored(self):
        oid = str(ObjectId())
        boat = Boat(id=oid)
        boat.merge({"id": str(ObjectId()), "_id": ObjectId()})
        assert boat.id == oid


class TestMetadata:
    """Tests for class-level metadata."""

    def test_collection_name(self):
        assert Boat.collection_name() == "boats"
        assert Owner.collection_name() == "owner"

    def test_relations(self):
        (descriptor,) = Boat.relations()
        assert descriptor.property == "owner"
        assert Owner.relations() == []

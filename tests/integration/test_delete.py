"""
Integration tests for deleting entities.

Tests cover:
- Instance delete and identifier clearing
- Cascading deletes through relations
- delete_by_id and delete_many
"""

import pytest
from bson import ObjectId

from entodm.entity import Entity
from entodm.errors import InvalidIdentifierError
from entodm.registry import register_relation, relation


class Customer(Entity):
    name: str | None = None


class Item(Entity):
    sku: str | None = None


@relation("customer", "customer_id", Customer)
@relation("items", "item_ids", Item)
class Order(Entity):
    number: int = 0
    customer: Customer | None = None
    items: list[Item] = []


class Folder(Entity):
    name: str | None = None
    parent: "Folder | None" = None


register_relation(Folder, "parent", "parent_id", Folder)


class TestInstanceDelete:
    """Tests for delete()."""

    @pytest.mark.asyncio
    async def test_delete_removes_document(self, store):
        customer = await Customer(name="Ann").create()

        assert await customer.delete() is True
        assert customer.id is None
        assert store.document_count("customer") == 0

    @pytest.mark.asyncio
    async def test_delete_unsaved(self, store):
        assert await Customer(name="Ann").delete() is False

    @pytest.mark.asyncio
    async def test_delete_already_deleted(self, store):
        customer = await Customer(name="Ann").create()
        stale = await Customer.find_one(customer.id)
        await customer.delete()

        assert await stale.delete() is False
        assert stale.id is not None


class TestCascadingDelete:
    """Tests for delete(cascade=True)."""

    @pytest.mark.asyncio
    async def test_default_does_not_cascade(self, store):
        order = await Order(number=1, customer=Customer(name="Ann")).create()

        await order.delete()

        assert store.document_count("order") == 0
        assert store.document_count("customer") == 1

    @pytest.mark.asyncio
    async def test_cascade_one_and_many(self, store):
        order = await Order(
            number=1, customer=Customer(name="Ann"), items=[Item(sku="a"), Item(sku="b")]
        ).create()
        await Item(sku="other").create()

        assert await order.delete(cascade=True) is True

        assert store.document_count("order") == 0
        assert store.document_count("customer") == 0
        assert [d["sku"] for d in store.get_all_documents("item")] == ["other"]
        assert order.customer.id is None

    @pytest.mark.asyncio
    async def test_cascade_from_loaded_entity(self, store):
        """Relations resolved on read are deleted with the owner."""
        created = await Order(number=1, customer=Customer(name="Ann")).create()
        loaded = await Order.find_one(created.id)

        await loaded.delete(cascade=True)

        assert store.document_count("order") == 0
        assert store.document_count("customer") == 0

    @pytest.mark.asyncio
    async def test_cascade_cycle_terminates(self, store):
        a, b = Folder(name="a"), Folder(name="b")
        a.parent = b
        b.parent = a
        await a.create()

        assert await a.delete(cascade=True) is True

        assert store.document_count("folder") == 0


class TestClassLevelDeletes:
    """Tests for delete_by_id and delete_many."""

    @pytest.mark.asyncio
    async def test_delete_by_id(self, store):
        customer = await Customer(name="Ann").create()

        assert await Customer.delete_by_id(customer.id) is True
        assert await Customer.delete_by_id(customer.id) is False

    @pytest.mark.asyncio
    async def test_delete_by_id_malformed(self, store):
        with pytest.raises(InvalidIdentifierError):
            await Customer.delete_by_id("bad")

    @pytest.mark.asyncio
    async def test_delete_by_object_id(self, store):
        customer = await Customer(name="Ann").create()
        assert await Customer.delete_by_id(ObjectId(customer.id)) is True

    @pytest.mark.asyncio
    async def test_delete_many(self, store):
        await Customer.create_many([{"name": "a"}, {"name": "a"}, {"name": "b"}])

        assert await Customer.delete_many({"name": "a"}) is True
        assert await Customer.delete_many({"name": "a"}) is False
        assert [c.name for c in await Customer.find()] == ["b"]

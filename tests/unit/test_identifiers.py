"""
Unit tests for identifier coercion and filter normalization.

Tests cover:
- Hex string / ObjectId coercion
- Bare identifiers as filters
- "id" key renaming and operator coercion
"""

import re

import pytest
from bson import ObjectId

from entodm.errors import InvalidIdentifierError
from entodm.identifiers import coerce_object_id, is_identifier, normalize_filter, to_hex

HEX = "64b7f0c2a1e4d3b2c1a09f8e"


class TestCoercion:
    """Tests for coerce_object_id and to_hex."""

    def test_hex_string_becomes_object_id(self):
        assert coerce_object_id(HEX) == ObjectId(HEX)

    def test_object_id_passes_through(self):
        oid = ObjectId()
        assert coerce_object_id(oid) is oid

    @pytest.mark.parametrize("value", ["", "xyz", "64b7f0c2a1e4d3b2c1a09f8", 42, None])
    def test_invalid_values_raise(self, value):
        with pytest.raises(InvalidIdentifierError) as exc_info:
            coerce_object_id(value, "author_id")
        assert exc_info.value.field_name == "author_id"

    def test_to_hex(self):
        """Stored identifiers become 24-char hex strings."""
        assert to_hex(ObjectId(HEX)) == HEX
        assert to_hex(None) is None

    def test_is_identifier(self):
        assert is_identifier(HEX)
        assert is_identifier(ObjectId())
        assert not is_identifier({"_id": HEX})


class TestNormalizeFilter:
    """Tests for normalize_filter."""

    def test_none_matches_everything(self):
        assert normalize_filter(None) == {}

    def test_bare_identifier(self):
        """A bare id becomes an equality filter on _id."""
        assert normalize_filter(HEX) == {"_id": ObjectId(HEX)}

    def test_malformed_bare_identifier(self):
        with pytest.raises(InvalidIdentifierError):
            normalize_filter("not-an-id")

    def test_id_key_renamed(self):
        """An "id" key targets _id."""
        assert normalize_filter({"id": HEX, "title": "x"}) == {"_id": ObjectId(HEX), "title": "x"}

    def test_operator_operands_coerced(self):
        other = ObjectId()
        result = normalize_filter({"_id": {"$in": [HEX, other], "$ne": HEX}})
        assert result == {"_id": {"$in": [ObjectId(HEX), other], "$ne": ObjectId(HEX)}}

    def test_other_keys_pass_through(self):
        """Non-identifier keys are not touched."""
        pattern = re.compile("^He")
        payload = {"title": pattern, "views": {"$gt": 3}}
        assert normalize_filter(payload) == payload

    def test_input_not_mutated(self):
        payload = {"id": HEX}
        normalize_filter(payload)
        assert payload == {"id": HEX}

    def test_non_mapping_rejected(self):
        with pytest.raises(TypeError):
            normalize_filter(42)

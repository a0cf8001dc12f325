"""
Identifier coercion and filter normalization.

Entities hold their identifier as the canonical 24-character hex string;
documents hold it as a bson ObjectId under "_id". Everything that crosses
that boundary goes through this module.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from bson import ObjectId

from .errors import InvalidIdentifierError

ID_FIELD = "_id"

# Operators whose operand is a single identifier or a list of identifiers
_SCALAR_OPERATORS = ("$eq", "$ne")
_LIST_OPERATORS = ("$in", "$nin")


def is_identifier(value: Any) -> bool:
    """Whether value is a bare identifier (hex string or ObjectId)."""
    return isinstance(value, (str, ObjectId))


def coerce_object_id(value: Any, field_name: str = ID_FIELD) -> ObjectId:
    """Convert an identifier to its store-native form.

    Raises:
        InvalidIdentifierError: If value is not an ObjectId or valid hex string
    """
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise InvalidIdentifierError(value, field_name)


def to_hex(value: Any) -> str | None:
    """Canonical string form of a stored identifier."""
    if value is None:
        return None
    return str(value)


def _coerce_condition(condition: Any) -> Any:
    if isinstance(condition, str):
        return coerce_object_id(condition)
    if isinstance(condition, Mapping):
        result = dict(condition)
        for op in _SCALAR_OPERATORS:
            if isinstance(result.get(op), str):
                result[op] = coerce_object_id(result[op])
        for op in _LIST_OPERATORS:
            if op in result:
                result[op] = [
                    coerce_object_id(v) if isinstance(v, str) else v for v in result[op]
                ]
        return result
    return condition


def normalize_filter(filter_or_id: Any = None) -> dict[str, Any]:
    """Turn a filter argument into a store filter.

    - None means "match everything".
    - A bare identifier becomes an equality filter on "_id".
    - In a mapping, an "id" key is renamed "_id" and string identifiers
      at "_id" (directly or inside $eq/$ne/$in/$nin) become ObjectIds.
      Everything else passes through verbatim.

    Raises:
        InvalidIdentifierError: If an identifier is malformed
        TypeError: If the argument is neither a mapping nor an identifier
    """
    if filter_or_id is None:
        return {}
    if is_identifier(filter_or_id):
        return {ID_FIELD: coerce_object_id(filter_or_id)}
    if not isinstance(filter_or_id, Mapping):
        raise TypeError(f"Filter must be a mapping or identifier, got {type(filter_or_id).__name__}")

    payload = dict(filter_or_id)
    if "id" in payload and ID_FIELD not in payload:
        payload[ID_FIELD] = payload.pop("id")
    if ID_FIELD in payload:
        payload[ID_FIELD] = _coerce_condition(payload[ID_FIELD])
    return payload

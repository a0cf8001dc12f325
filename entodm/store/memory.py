"""
In-memory document store implementation for testing.

This module provides an in-memory backend for:
- Unit tests
- Integration tests
- Local development without a MongoDB server

It follows MongoDB semantics for the subset of the query language the
CRUD engine emits, so code tested against it behaves the same against a
real server.

Supported query operators:
    $eq $ne $gt $gte $lt $lte $in $nin $exists $regex $options $not
    $all $size $and $or $nor, compiled regular expressions, array
    containment and dotted paths.

Supported pipeline stages:
    $match $set $addFields $unset $project $sort $skip $limit $lookup $count

Supported expressions:
    field paths, $$variables, $toObjectId, $map, $ifNull, $literal

Invariants:
    - All data is lost on close() or process exit
    - Stored and returned documents are deep copies; callers never share
      state with the store
    - Duplicate _id raises pymongo.errors.DuplicateKeyError, like a server

How to change safely:
    - This is test-only code, changes don't affect production
    - Keep every operator aligned with MongoDB's documented behavior
"""

from __future__ import annotations

import copy
import datetime
import logging
import re
from collections.abc import Mapping, Sequence
from typing import Any

from bson import ObjectId
from pymongo.errors import DuplicateKeyError, OperationFailure

from .base import Document, SortSpec, StoreConnectionError

logger = logging.getLogger(__name__)


class _Missing:
    """Marker for an absent field (distinct from an explicit None)."""

    def __repr__(self) -> str:
        return "MISSING"


MISSING = _Missing()


# Field paths


def get_path(document: Any, path: str) -> Any:
    """Value at a dotted path, or MISSING."""
    current = document
    for part in path.split("."):
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def set_path(document: dict[str, Any], path: str, value: Any) -> None:
    """Set a value at a dotted path, creating intermediate documents."""
    parts = path.split(".")
    current = document
    for part in parts[:-1]:
        nested = current.get(part)
        if not isinstance(nested, dict):
            nested = {}
            current[part] = nested
        current = nested
    current[parts[-1]] = value


def unset_path(document: dict[str, Any], path: str) -> None:
    """Remove the value at a dotted path if present."""
    parts = path.split(".")
    current: Any = document
    for part in parts[:-1]:
        current = current.get(part) if isinstance(current, dict) else None
        if current is None:
            return
    if isinstance(current, dict):
        current.pop(parts[-1], None)


# Comparison


def _type_rank(value: Any) -> int:
    # MongoDB BSON comparison order
    if value is MISSING or value is None:
        return 1
    if isinstance(value, bool):
        return 8
    if isinstance(value, (int, float)):
        return 2
    if isinstance(value, str):
        return 3
    if isinstance(value, Mapping):
        return 4
    if isinstance(value, list):
        return 5
    if isinstance(value, (bytes, bytearray)):
        return 6
    if isinstance(value, ObjectId):
        return 7
    if isinstance(value, datetime.datetime):
        return 9
    return 10


def sort_key(value: Any) -> tuple[int, Any]:
    """Total-order key following BSON type order."""
    rank = _type_rank(value)
    if rank == 1:
        return (rank, 0)
    if rank == 4:
        return (rank, tuple((k, sort_key(v)) for k, v in value.items()))
    if rank == 5:
        return (rank, tuple(sort_key(v) for v in value))
    if rank == 7:
        return (rank, str(value))
    if rank == 8:
        return (rank, int(value))
    if rank == 10:
        return (rank, repr(value))
    return (rank, value)


def values_equal(a: Any, b: Any) -> bool:
    """BSON equality (bool and number are distinct types)."""
    if a is MISSING:
        a = None
    if b is MISSING:
        b = None
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _compare(a: Any, b: Any) -> int | None:
    """-1/0/1 for same-bracket values, None when types are not comparable."""
    if _type_rank(a) != _type_rank(b):
        return None
    ka, kb = sort_key(a), sort_key(b)
    if ka < kb:
        return -1
    if ka > kb:
        return 1
    return 0


# Query matching


def _candidates(value: Any) -> list[Any]:
    # A field condition matches an array if it matches the array or any element
    if isinstance(value, list):
        return [value, *value]
    return [value]


def _equals_or_contains(value: Any, target: Any) -> bool:
    if isinstance(target, re.Pattern):
        return any(isinstance(c, str) and target.search(c) is not None for c in _candidates(value))
    return any(values_equal(c, target) for c in _candidates(value))


def _regex(pattern: Any, options: str = "") -> re.Pattern:
    if isinstance(pattern, re.Pattern):
        return pattern
    flags = 0
    if "i" in options:
        flags |= re.IGNORECASE
    if "m" in options:
        flags |= re.MULTILINE
    if "s" in options:
        flags |= re.DOTALL
    if "x" in options:
        flags |= re.VERBOSE
    return re.compile(pattern, flags)


def _is_operator_document(condition: Any) -> bool:
    return (
        isinstance(condition, Mapping)
        and bool(condition)
        and all(isinstance(k, str) and k.startswith("$") for k in condition)
    )


def _match_operators(value: Any, condition: Mapping[str, Any]) -> bool:
    for op, operand in condition.items():
        if op == "$eq":
            ok = _equals_or_contains(value, operand)
        elif op == "$ne":
            ok = not _equals_or_contains(value, operand)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = False
            for candidate in _candidates(value):
                if candidate is MISSING:
                    continue
                result = _compare(candidate, operand)
                if result is None:
                    continue
                if (
                    (op == "$gt" and result > 0)
                    or (op == "$gte" and result >= 0)
                    or (op == "$lt" and result < 0)
                    or (op == "$lte" and result <= 0)
                ):
                    ok = True
                    break
        elif op == "$in":
            ok = any(_equals_or_contains(value, target) for target in operand)
        elif op == "$nin":
            ok = not any(_equals_or_contains(value, target) for target in operand)
        elif op == "$exists":
            ok = (value is not MISSING) == bool(operand)
        elif op == "$regex":
            pattern = _regex(operand, condition.get("$options", ""))
            ok = _equals_or_contains(value, pattern)
        elif op == "$options":
            continue
        elif op == "$not":
            if isinstance(operand, Mapping):
                ok = not _match_operators(value, operand)
            else:
                ok = not _equals_or_contains(value, _regex(operand))
        elif op == "$all":
            ok = isinstance(value, list) and all(
                _equals_or_contains(value, target) for target in operand
            )
        elif op == "$size":
            ok = isinstance(value, list) and len(value) == operand
        else:
            raise OperationFailure(f"unknown operator: {op}")
        if not ok:
            return False
    return True


def matches(document: Mapping[str, Any], filter: Mapping[str, Any]) -> bool:
    """Whether document satisfies a MongoDB query filter."""
    for key, condition in filter.items():
        if key == "$and":
            if not all(matches(document, sub) for sub in condition):
                return False
        elif key == "$or":
            if not any(matches(document, sub) for sub in condition):
                return False
        elif key == "$nor":
            if any(matches(document, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            raise OperationFailure(f"unknown top level operator: {key}")
        else:
            value = get_path(document, key)
            if _is_operator_document(condition):
                if not _match_operators(value, condition):
                    return False
            elif not _equals_or_contains(value, condition):
                return False
    return True


# Aggregation expressions


def _to_object_id(value: Any) -> Any:
    if value is MISSING or value is None:
        return None
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    raise OperationFailure(f"Failed to parse objectId '{value}' in $convert with no onError value")


def evaluate(expression: Any, document: Mapping[str, Any], variables: Mapping[str, Any]) -> Any:
    """Evaluate an aggregation expression against a document."""
    if isinstance(expression, str):
        if expression.startswith("$$"):
            name, _, rest = expression[2:].partition(".")
            if name == "ROOT" or name == "CURRENT":
                base: Any = document
            elif name in variables:
                base = variables[name]
            else:
                raise OperationFailure(f"Use of undefined variable: {name}")
            return get_path(base, rest) if rest else base
        if expression.startswith("$"):
            return get_path(document, expression[1:])
        return expression

    if isinstance(expression, list):
        return [evaluate(item, document, variables) for item in expression]

    if isinstance(expression, Mapping):
        if len(expression) == 1:
            op, operand = next(iter(expression.items()))
            if op == "$literal":
                return operand
            if op == "$toObjectId":
                return _to_object_id(evaluate(operand, document, variables))
            if op == "$ifNull":
                for candidate in operand:
                    value = evaluate(candidate, document, variables)
                    if value is not MISSING and value is not None:
                        return value
                return None
            if op == "$map":
                source = evaluate(operand["input"], document, variables)
                if source is MISSING or source is None:
                    return None
                if not isinstance(source, list):
                    raise OperationFailure("input to $map must be an array")
                name = operand.get("as", "this")
                return [
                    evaluate(operand["in"], document, {**variables, name: item})
                    for item in source
                ]
            if op.startswith("$"):
                raise OperationFailure(f"Unrecognized expression '{op}'")
        return {k: evaluate(v, document, variables) for k, v in expression.items()}

    return expression


# Collection


class InMemoryCollection:
    """DocumentCollection over a list of documents held by the store."""

    def __init__(self, store: InMemoryDocumentStore, name: str) -> None:
        self._store = store
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def _documents(self) -> list[Document]:
        return self._store._data(self._name)

    def _matching(self, filter: Mapping[str, Any]) -> list[Document]:
        return [doc for doc in self._documents if matches(doc, filter)]

    async def insert_one(self, document: Mapping[str, Any]) -> Any:
        stored = copy.deepcopy(dict(document))
        stored.setdefault("_id", ObjectId())
        if any(values_equal(doc["_id"], stored["_id"]) for doc in self._documents):
            raise DuplicateKeyError(
                f"E11000 duplicate key error collection: {self._name} dup key: {{ _id: {stored['_id']!r} }}"
            )
        self._documents.append(stored)
        logger.debug(
            "Document inserted into in-memory store",
            extra={"collection": self._name, "id": str(stored["_id"])},
        )
        return stored["_id"]

    async def insert_many(self, documents: Sequence[Mapping[str, Any]]) -> None:
        for document in documents:
            await self.insert_one(document)

    async def find_one(self, filter: Mapping[str, Any]) -> Document | None:
        for doc in self._documents:
            if matches(doc, filter):
                return copy.deepcopy(doc)
        return None

    async def find(
        self,
        filter: Mapping[str, Any],
        *,
        limit: int | None = None,
        skip: int | None = None,
        sort: SortSpec | None = None,
    ) -> list[Document]:
        stages: list[dict[str, Any]] = [{"$match": dict(filter)}]
        if sort:
            stages.append({"$sort": dict(sort)})
        if skip:
            stages.append({"$skip": skip})
        if limit:
            stages.append({"$limit": limit})
        return await self.aggregate(stages)

    async def update_one(
        self,
        filter: Mapping[str, Any],
        values: Mapping[str, Any],
        *,
        upsert: bool = False,
    ) -> None:
        for doc in self._documents:
            if matches(doc, filter):
                _apply_set(doc, values)
                return
        if upsert:
            created: dict[str, Any] = {}
            for key, condition in filter.items():
                if not key.startswith("$") and not _is_operator_document(condition):
                    set_path(created, key, copy.deepcopy(condition))
            _apply_set(created, values)
            await self.insert_one(created)

    async def update_many(self, filter: Mapping[str, Any], values: Mapping[str, Any]) -> int:
        matched = self._matching(filter)
        for doc in matched:
            _apply_set(doc, values)
        return len(matched)

    async def delete_one(self, filter: Mapping[str, Any]) -> int:
        for index, doc in enumerate(self._documents):
            if matches(doc, filter):
                del self._documents[index]
                return 1
        return 0

    async def delete_many(self, filter: Mapping[str, Any]) -> int:
        keep = [doc for doc in self._documents if not matches(doc, filter)]
        deleted = len(self._documents) - len(keep)
        self._documents[:] = keep
        return deleted

    async def count_documents(self, filter: Mapping[str, Any]) -> int:
        return len(self._matching(filter))

    async def aggregate(self, stages: Sequence[Mapping[str, Any]]) -> list[Document]:
        results = [copy.deepcopy(doc) for doc in self._documents]
        for stage in stages:
            if len(stage) != 1:
                raise OperationFailure("A pipeline stage specification object must contain exactly one field.")
            name, spec = next(iter(stage.items()))
            results = self._run_stage(name, spec, results)
        return results

    def _run_stage(self, name: str, spec: Any, documents: list[Document]) -> list[Document]:
        if name == "$match":
            return [doc for doc in documents if matches(doc, spec)]
        if name in ("$set", "$addFields"):
            for doc in documents:
                computed = {k: evaluate(v, doc, {}) for k, v in spec.items()}
                for key, value in computed.items():
                    if value is not MISSING:
                        set_path(doc, key, value)
            return documents
        if name == "$unset":
            fields = [spec] if isinstance(spec, str) else list(spec)
            for doc in documents:
                for path in fields:
                    unset_path(doc, path)
            return documents
        if name == "$project":
            return [_project(doc, spec) for doc in documents]
        if name == "$sort":
            ordered = list(documents)
            for key, direction in reversed(list(spec.items())):
                ordered.sort(key=lambda d: sort_key(get_path(d, key)), reverse=direction == -1)
            return ordered
        if name == "$skip":
            return documents[spec:]
        if name == "$limit":
            return documents[:spec]
        if name == "$count":
            return [{spec: len(documents)}] if documents else []
        if name == "$lookup":
            return [self._lookup(doc, spec) for doc in documents]
        raise OperationFailure(f"Unrecognized pipeline stage name: '{name}'")

    def _lookup(self, document: Document, spec: Mapping[str, Any]) -> Document:
        foreign = self._store._data(spec["from"])
        local = get_path(document, spec["localField"])
        if local is MISSING:
            local = None
        wanted = local if isinstance(local, list) else [local]

        joined = []
        for candidate in foreign:
            value = get_path(candidate, spec["foreignField"])
            if any(_equals_or_contains(value, target) for target in wanted):
                joined.append(copy.deepcopy(candidate))
        set_path(document, spec["as"], joined)
        return document


def _apply_set(document: dict[str, Any], values: Mapping[str, Any]) -> None:
    """$set values on document."""
    for key, value in values.items():
        if key == "_id" and "_id" in document and not values_equal(document["_id"], value):
            raise OperationFailure("Performing an update on the path '_id' would modify the immutable field '_id'")
        current = get_path(document, key)
        if current is MISSING or not values_equal(current, value):
            set_path(document, key, copy.deepcopy(value))


def _project(document: Document, spec: Mapping[str, Any]) -> Document:
    flags = {k: v for k, v in spec.items() if isinstance(v, (bool, int))}
    inclusion = any(bool(v) for k, v in flags.items() if k != "_id") or any(
        k not in flags for k in spec
    )
    if not inclusion:
        result = copy.deepcopy(document)
        for key, value in flags.items():
            if not value:
                unset_path(result, key)
        return result

    result: Document = {}
    if spec.get("_id", 1) and "_id" in document:
        result["_id"] = document["_id"]
    for key, value in spec.items():
        if key == "_id":
            continue
        if key in flags:
            if value:
                found = get_path(document, key)
                if found is not MISSING:
                    set_path(result, key, copy.deepcopy(found))
        else:
            computed = evaluate(value, document, {})
            if computed is not MISSING:
                set_path(result, key, computed)
    return result


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore for testing.

    Example:
        >>> store = InMemoryDocumentStore()
        >>> await store.connect()
        >>> await store.collection("user").insert_one({"name": "Mike"})
    """

    def __init__(self) -> None:
        """Initialize empty in-memory store."""
        self._collections: dict[str, list[Document]] = {}
        self._connected = False

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryDocumentStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._collections.clear()
        logger.debug("InMemoryDocumentStore closed")

    def collection(self, name: str) -> InMemoryCollection:
        """Get a collection by name."""
        if not self._connected:
            raise StoreConnectionError("Not connected")
        return InMemoryCollection(self, name)

    def _data(self, name: str) -> list[Document]:
        if not self._connected:
            raise StoreConnectionError("Not connected")
        return self._collections.setdefault(name, [])

    # Testing helpers

    def collection_names(self) -> list[str]:
        """Names of collections holding at least one document (testing helper)."""
        return sorted(name for name, docs in self._collections.items() if docs)

    def get_all_documents(self, name: str) -> list[Document]:
        """Copies of every document in a collection (testing helper)."""
        return copy.deepcopy(self._collections.get(name, []))

    def document_count(self, name: str) -> int:
        """Number of documents in a collection (testing helper)."""
        return len(self._collections.get(name, []))

    def clear(self) -> None:
        """Remove all documents, keeping the connection (testing helper)."""
        self._collections.clear()

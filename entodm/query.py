"""
Fluent query modifiers for entodm.

Modifiers (take, skip, sort_by) build a Query value owned by the caller.
Every modifier call returns a new Query; the receiver is never mutated,
so a chain applies to exactly the query it ends in and two chains on the
same entity type cannot observe each other.

Example:
    >>> page = await Post.sort_by({"title": "ASC"}).skip(20).take(10).find()
    >>> everything = await Post.find()   # no modifiers carried over
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from .crud import read

if TYPE_CHECKING:
    from .entity import Entity

E = TypeVar("E", bound="Entity")

ASCENDING = 1
DESCENDING = -1

_DIRECTIONS: dict[Any, int] = {
    "ASC": ASCENDING,
    "DESC": DESCENDING,
    ASCENDING: ASCENDING,
    DESCENDING: DESCENDING,
}


def parse_direction(value: Any) -> int:
    """Map "ASC"/"DESC" (any case) or 1/-1 to a sort direction.

    Raises:
        ValueError: If value is not a known direction
    """
    key = value.upper() if isinstance(value, str) else value
    if isinstance(key, bool) or key not in _DIRECTIONS:
        raise ValueError(f"Invalid sort direction {value!r}: expected 'ASC', 'DESC', 1 or -1")
    return _DIRECTIONS[key]


def _check_amount(amount: int | None, modifier: str) -> int | None:
    if amount is None:
        return None
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ValueError(f"{modifier}() expects an integer, got {amount!r}")
    if amount < 0:
        raise ValueError(f"{modifier}() expects a non-negative amount, got {amount}")
    return amount


@dataclass(frozen=True)
class QueryOptions:
    """Pagination and sort applied to one query execution.

    Attributes:
        limit: Maximum documents to return (None = no limit)
        offset: Documents to skip (None = none)
        sort: (property, direction) pairs in priority order
    """

    limit: int | None = None
    offset: int | None = None
    sort: tuple[tuple[str, int], ...] = ()

    @property
    def sort_spec(self) -> dict[str, int]:
        """Sort as an ordered property -> direction mapping."""
        return dict(self.sort)

    @property
    def is_default(self) -> bool:
        return self.limit is None and self.offset is None and not self.sort


DEFAULT_OPTIONS = QueryOptions()


@dataclass(frozen=True)
class Query(Generic[E]):
    """Immutable query builder for one entity type.

    Attributes:
        entity_type: Entity class queried
        options: Accumulated modifiers
    """

    entity_type: type[E]
    options: QueryOptions = DEFAULT_OPTIONS

    def take(self, amount: int | None) -> Query[E]:
        """Limit the number of documents returned (None unsets)."""
        return replace(self, options=replace(self.options, limit=_check_amount(amount, "take")))

    def skip(self, amount: int | None) -> Query[E]:
        """Skip a number of documents (None unsets)."""
        return replace(self, options=replace(self.options, offset=_check_amount(amount, "skip")))

    def sort_by(self, sort: Mapping[str, Any]) -> Query[E]:
        """Sort by one or more properties.

        Keys accumulate across calls; a repeated key keeps its position and
        takes the latest direction.

        Example:
            >>> Post.sort_by({"title": "ASC"}).sort_by({"created": "DESC"})
        """
        merged = dict(self.options.sort)
        for key, direction in sort.items():
            merged[key] = parse_direction(direction)
        return replace(self, options=replace(self.options, sort=tuple(merged.items())))

    async def find(self, filter: Any = None, resolve_relations: bool = True) -> list[E]:
        """Find every matching entity, applying the modifiers."""
        return await read.find(self.entity_type, filter, self.options, resolve_relations)

    async def find_one(self, filter_or_id: Any = None, resolve_relations: bool = True) -> E | None:
        """First matching entity (honoring sort and skip), or None."""
        return await read.find_one(self.entity_type, filter_or_id, self.options, resolve_relations)

    async def count(self, filter: Any = None) -> int:
        """Number of matching documents; modifiers do not apply."""
        return await read.count(self.entity_type, filter)

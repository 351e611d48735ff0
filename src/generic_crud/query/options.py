"""
Declarative query description.

``StructuredQuery`` names *what* to match (equality, substring, range and
null clauses, all ANDed) and *how* results come back (ordering, eager
loads, omitted columns, pagination). It is a transient value: build one per
call and hand it to ``GenericCRUD.smart_query`` or ``apply_structured_query``.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any, NamedTuple, Union

from sqlalchemy import asc, desc

if TYPE_CHECKING:
    from sqlalchemy.orm import QueryableAttribute
    from sqlalchemy.sql.elements import UnaryExpression

Field = Union[str, "QueryableAttribute[Any]"]
OrderDirective = Union[str, tuple[Field, "SortDirection | str"]]


def field_name(selector: Field) -> str:
    """Return the attribute key a field selector refers to."""
    if isinstance(selector, str):
        return selector
    return str(selector.key)


class SortDirection(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def _missing_(cls, value: object) -> SortDirection | None:
        if isinstance(value, str):
            upper = value.upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None

    def __str__(self) -> str:
        return self.value

    def apply(self, column: Any) -> UnaryExpression[Any]:
        if self is SortDirection.DESC:
            return desc(column)
        return asc(column)


class Range(NamedTuple):
    """Inclusive lower/upper bound pair for a between clause."""

    lower: Any
    upper: Any


@dataclass(frozen=True)
class StructuredQuery:
    """
    Immutable filter descriptor.

    Attributes:
        equal: ``attr = value`` constraints.
        like: ``attr LIKE %value%`` constraints.
        between: ``attr BETWEEN lower AND upper`` constraints (inclusive).
        is_null: attributes that must be NULL.
        order_by: ordered directives; ``("name", SortDirection.DESC)``,
            ``"name"`` (ascending) or ``"-name"`` (descending). A mapping
            is read in insertion order.
        preload: relationship paths to eager-load, e.g. ``"posts.comments"``.
        omit: columns left out of the read.
        limit: maximum number of results.
        offset: number of results to skip.
    """

    equal: Mapping[Field, Any] = field(default_factory=dict)
    like: Mapping[Field, str] = field(default_factory=dict)
    between: Mapping[Field, tuple[Any, Any]] = field(default_factory=dict)
    is_null: Sequence[Field] = ()
    order_by: Sequence[OrderDirective] | Mapping[Field, SortDirection | str] = ()
    preload: Sequence[str] = ()
    omit: Sequence[Field] = ()
    limit: int | None = None
    offset: int | None = None

    def __post_init__(self) -> None:
        # A lone string is one directive, not a sequence of characters.
        for name in ("is_null", "order_by", "preload", "omit"):
            value = getattr(self, name)
            if isinstance(value, str):
                object.__setattr__(self, name, (value,))

    def ordering(self) -> list[tuple[Field, SortDirection]]:
        """Normalise ``order_by`` into ``(field, direction)`` pairs."""
        items: Any = (
            self.order_by.items()
            if isinstance(self.order_by, Mapping)
            else self.order_by
        )
        result: list[tuple[Field, SortDirection]] = []
        for item in items:
            if isinstance(item, str):
                if item.startswith("-"):
                    result.append((item[1:], SortDirection.DESC))
                else:
                    result.append((item, SortDirection.ASC))
                continue
            selector, direction = item
            result.append((selector, SortDirection(direction)))
        return result

    def with_ordering(self, *orders: OrderDirective) -> StructuredQuery:
        """Return a copy with the ordering replaced."""
        return replace(self, order_by=tuple(orders))

    def with_pagination(
        self,
        limit: int | None = None,
        offset: int | None = None,
    ) -> StructuredQuery:
        """Return a copy with updated pagination parameters."""
        return replace(
            self,
            limit=limit if limit is not None else self.limit,
            offset=offset if offset is not None else self.offset,
        )

    def merge(self, other: StructuredQuery) -> StructuredQuery:
        """
        Combine two queries into one.

        - Keyed clauses are unioned; ``other`` wins on the same key.
        - ``is_null``, ordering, ``preload`` and ``omit`` are concatenated
          (``other`` appended).
        - ``other``'s limit/offset override ``self``'s if set.
        """
        return StructuredQuery(
            equal={**self.equal, **other.equal},
            like={**self.like, **other.like},
            between={**self.between, **other.between},
            is_null=(*self.is_null, *other.is_null),
            order_by=(*self.ordering(), *other.ordering()),
            preload=(*self.preload, *other.preload),
            omit=(*self.omit, *other.omit),
            limit=other.limit if other.limit is not None else self.limit,
            offset=other.offset if other.offset is not None else self.offset,
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise to a JSON-compatible dictionary, skipping empty clauses."""
        result: dict[str, Any] = {}
        if self.equal:
            result["equal"] = {field_name(k): v for k, v in self.equal.items()}
        if self.like:
            result["like"] = {field_name(k): v for k, v in self.like.items()}
        if self.between:
            result["between"] = {
                field_name(k): [v[0], v[1]] for k, v in self.between.items()
            }
        if self.is_null:
            result["is_null"] = [field_name(f) for f in self.is_null]
        ordering = self.ordering()
        if ordering:
            result["order_by"] = [[field_name(f), str(d)] for f, d in ordering]
        if self.preload:
            result["preload"] = list(self.preload)
        if self.omit:
            result["omit"] = [field_name(f) for f in self.omit]
        if self.limit is not None:
            result["limit"] = self.limit
        if self.offset is not None:
            result["offset"] = self.offset
        return result


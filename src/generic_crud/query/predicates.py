"""
Built-in predicate builders and the default registry.

Usage::

    from generic_crud.query.predicates import DEFAULT_REGISTRY

    expr = DEFAULT_REGISTRY.build(FilterOperator.EQ, User.name, "alice")
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, cast

from .operators import FilterOperator
from .strategy import PredicateBuilder, PredicateRegistry

if TYPE_CHECKING:
    from sqlalchemy.sql.elements import ColumnElement


class EqualBuilder(PredicateBuilder):
    operator = FilterOperator.EQ  # type: ignore[assignment]

    def build(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column == value)


class SubstringBuilder(PredicateBuilder):
    """``LIKE %value%``; case sensitivity follows the database collation."""

    operator = FilterOperator.LIKE  # type: ignore[assignment]

    def build(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.like(f"%{value}%"))


class RangeBuilder(PredicateBuilder):
    """Inclusive at both ends."""

    operator = FilterOperator.BETWEEN  # type: ignore[assignment]

    def build(self, column: Any, value: Any) -> ColumnElement[bool]:
        lower, upper = value
        return cast("ColumnElement[bool]", column.between(lower, upper))


class NullBuilder(PredicateBuilder):
    operator = FilterOperator.IS_NULL  # type: ignore[assignment]

    def build(self, column: Any, value: Any) -> ColumnElement[bool]:
        return cast("ColumnElement[bool]", column.is_(None))


def build_default_registry() -> PredicateRegistry:
    """A fresh registry holding every built-in builder."""
    return PredicateRegistry(
        [EqualBuilder(), SubstringBuilder(), RangeBuilder(), NullBuilder()]
    )


DEFAULT_REGISTRY: PredicateRegistry = build_default_registry()

__all__ = [
    "DEFAULT_REGISTRY",
    "EqualBuilder",
    "NullBuilder",
    "RangeBuilder",
    "SubstringBuilder",
    "build_default_registry",
]

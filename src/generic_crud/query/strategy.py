"""
Pluggable predicate construction.

Each :class:`FilterOperator` clause kind is turned into SQL by one
:class:`PredicateBuilder`. The compiler looks builders up in a
:class:`PredicateRegistry`, so swapping an entry (say, a case-insensitive
substring match) changes translation without touching the compiler.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy import ColumnElement

    from .operators import FilterOperator


class PredicateBuilder(ABC):
    """Builds the ``WHERE`` fragment for one clause kind."""

    @property
    @abstractmethod
    def operator(self) -> FilterOperator: ...

    @abstractmethod
    def build(self, column: Any, value: Any) -> ColumnElement[bool]:
        """
        Args:
            column: a mapped attribute or a bare ``column()`` reference.
            value: the clause payload (a scalar, a pattern, a bounds pair,
                or ``None`` for null checks).
        """


class PredicateRegistry:
    """One builder per :class:`FilterOperator`; a later entry replaces an earlier one."""

    def __init__(self, builders: Iterable[PredicateBuilder] = ()) -> None:
        self._builders: dict[FilterOperator, PredicateBuilder] = {}
        for builder in builders:
            self.register(builder)

    def __contains__(self, operator: object) -> bool:
        return operator in self._builders

    def register(self, builder: PredicateBuilder) -> PredicateBuilder | None:
        """Install *builder*, returning the one it replaced, if any."""
        previous = self._builders.get(builder.operator)
        self._builders[builder.operator] = builder
        return previous

    def unregister(self, operator: FilterOperator) -> None:
        self._builders.pop(operator, None)

    def build(
        self,
        operator: FilterOperator,
        column: Any,
        value: Any,
    ) -> ColumnElement[bool]:
        """
        Raises:
            ValueError: no builder is registered for *operator*.
        """
        try:
            builder = self._builders[operator]
        except KeyError:
            raise ValueError(
                f"No predicate builder registered for {operator!s}"
            ) from None
        return builder.build(column, value)

"""
Translate declarative lookups into SQLAlchemy predicates.

Two inputs are supported:

- a *filter-by-example*: a partially populated record instance; every
  non-zero column attribute becomes an equality predicate;
- a :class:`StructuredQuery`: explicit equality, substring, range and null
  clauses plus ordering, eager-load, omission and pagination directives.

Predicates are returned as a list of ``ColumnElement[bool]`` meant to be
passed to ``Select.where(*predicates)``, which ANDs them. An empty list
matches every row. Leaf compilation is delegated to a
:class:`PredicateRegistry` (``DEFAULT_REGISTRY`` unless given).

Field names that are not mapped on the model are passed through as bare
``column()`` references; the database rejects them at execution time.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import column
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import defer, selectinload

from ..exceptions import FieldNotFoundError, RelationshipNotFoundError
from ..models import Record, is_zero
from .operators import FilterOperator
from .options import field_name
from .predicates import DEFAULT_REGISTRY

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from sqlalchemy import ColumnElement, Select
    from sqlalchemy.orm.strategy_options import _AbstractLoad

    from .options import Field, SortDirection, StructuredQuery
    from .strategy import PredicateRegistry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Field resolution
# ---------------------------------------------------------------------------


def resolve_attribute(model: type[Any], selector: Field) -> Any:
    """
    Resolve a field selector to something usable in a SQL expression.

    Mapped attributes (columns, hybrids) resolve to the model attribute;
    anything else becomes an unbound ``column(name)``.
    """
    if not isinstance(selector, str):
        return selector
    if selector in sa_inspect(model).all_orm_descriptors.keys():
        return getattr(model, selector)
    logger.debug(
        "%s has no mapped attribute %r; passing it through",
        model.__name__,
        selector,
    )
    return column(selector)


def resolve_field_names(model: type[Any], fields: Iterable[Field]) -> frozenset[str]:
    """
    Resolve field selectors to mapped column keys.

    Raises:
        FieldNotFoundError: a selector names no column of *model*.
    """
    available = [prop.key for prop in sa_inspect(model).column_attrs]
    names: set[str] = set()
    for selector in fields:
        name = field_name(selector)
        if name not in available:
            raise FieldNotFoundError(name, model.__name__, available)
        names.add(name)
    return frozenset(names)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------


def build_example_filter(
    example: Any,
    *,
    registry: PredicateRegistry | None = None,
) -> list[ColumnElement[bool]]:
    """
    Build equality predicates from the non-zero columns of *example*.

    Values are read from the instance state, so unloaded attributes count
    as zero and no lazy load is triggered. Relationships are ignored.
    """
    reg = registry or DEFAULT_REGISTRY
    state = sa_inspect(example)
    mapper = state.mapper
    model = mapper.class_
    is_zero_field = example.is_zero_field if isinstance(example, Record) else None

    predicates: list[ColumnElement[bool]] = []
    for prop in mapper.column_attrs:
        key = prop.key
        value = state.dict.get(key)
        zero = is_zero_field(key) if is_zero_field is not None else is_zero(value)
        if zero:
            continue
        predicates.append(reg.build(FilterOperator.EQ, getattr(model, key), value))

    logger.debug(
        "Example %s compiled to %d predicate(s)", model.__name__, len(predicates)
    )
    return predicates


def build_query_filter(
    model: type[Any],
    query: StructuredQuery,
    *,
    registry: PredicateRegistry | None = None,
) -> list[ColumnElement[bool]]:
    """Build predicates for the equal, like, between and is_null clauses."""
    reg = registry or DEFAULT_REGISTRY
    predicates: list[ColumnElement[bool]] = []

    for selector, value in query.equal.items():
        attr = resolve_attribute(model, selector)
        predicates.append(reg.build(FilterOperator.EQ, attr, value))

    for selector, pattern in query.like.items():
        attr = resolve_attribute(model, selector)
        predicates.append(reg.build(FilterOperator.LIKE, attr, pattern))

    for selector, bounds in query.between.items():
        attr = resolve_attribute(model, selector)
        predicates.append(reg.build(FilterOperator.BETWEEN, attr, bounds))

    for selector in query.is_null:
        attr = resolve_attribute(model, selector)
        predicates.append(reg.build(FilterOperator.IS_NULL, attr, None))

    logger.debug(
        "Query on %s compiled to %d predicate(s)", model.__name__, len(predicates)
    )
    return predicates


# ---------------------------------------------------------------------------
# Statement options
# ---------------------------------------------------------------------------


def build_ordering(
    model: type[Any],
    ordering: Sequence[tuple[Field, SortDirection]],
) -> list[Any]:
    """One ``ASC``/``DESC`` clause per directive, in sequence order."""
    return [
        direction.apply(resolve_attribute(model, selector))
        for selector, direction in ordering
    ]


def build_eager_loads(model: type[Any], paths: Iterable[str]) -> list[_AbstractLoad]:
    """
    Build ``selectinload`` options for relationship paths.

    Dotted paths chain: ``"posts.comments"`` loads ``model.posts`` and each
    post's ``comments``.

    Raises:
        RelationshipNotFoundError: a path segment is not a relationship.
    """
    loaders: list[_AbstractLoad] = []
    for path in paths:
        current = model
        loader: Any = None
        for part in path.split("."):
            relationships = sa_inspect(current).relationships
            if part not in relationships:
                raise RelationshipNotFoundError(
                    part,
                    current.__name__,
                    list(relationships.keys()),
                    full_path=path,
                )
            attr = getattr(current, part)
            loader = selectinload(attr) if loader is None else loader.selectinload(attr)
            current = relationships[part].mapper.class_
        loaders.append(loader)
    return loaders


def build_read_omissions(model: type[Any], fields: Iterable[Field]) -> list[_AbstractLoad]:
    """
    Defer omitted columns; touching one on a loaded record raises.

    Primary key columns are always loaded.
    """
    mapper = sa_inspect(model)
    pk_keys = {mapper.get_property_by_column(col).key for col in mapper.primary_key}
    return [
        defer(getattr(model, name), raiseload=True)
        for name in sorted(resolve_field_names(model, fields) - pk_keys)
    ]


def apply_structured_query(
    stmt: Select[Any],
    model: type[Any],
    query: StructuredQuery,
    *,
    registry: PredicateRegistry | None = None,
) -> Select[Any]:
    """
    Apply every clause of *query* to a ``Select`` statement.

    Handles: filters, ``preload``, ``omit``, ordering, ``limit`` and
    ``offset``.
    """
    predicates = build_query_filter(model, query, registry=registry)
    if predicates:
        stmt = stmt.where(*predicates)

    options = [
        *build_eager_loads(model, query.preload),
        *build_read_omissions(model, query.omit),
    ]
    if options:
        stmt = stmt.options(*options)

    ordering = build_ordering(model, query.ordering())
    if ordering:
        stmt = stmt.order_by(*ordering)

    if query.limit is not None:
        stmt = stmt.limit(query.limit)
    if query.offset is not None:
        stmt = stmt.offset(query.offset)
    return stmt

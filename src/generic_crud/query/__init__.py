"""
Declarative query description and its SQLAlchemy translation.

Public API:
    - ``StructuredQuery`` / ``SortDirection`` / ``Range``: query value types
    - ``build_example_filter(example)``: filter-by-example predicates
    - ``build_query_filter(model, query)``: structured-query predicates
    - ``apply_structured_query(stmt, model, query)``: filters, ordering,
      eager loads, omissions and pagination applied to a ``Select``
    - ``PredicateBuilder`` / ``PredicateRegistry``: extension
      points for custom predicate compilation
"""

from .compiler import (
    apply_structured_query,
    build_eager_loads,
    build_example_filter,
    build_ordering,
    build_query_filter,
    build_read_omissions,
    resolve_attribute,
    resolve_field_names,
)
from .operators import FilterOperator
from .options import Field, Range, SortDirection, StructuredQuery, field_name
from .predicates import DEFAULT_REGISTRY, build_default_registry
from .strategy import PredicateBuilder, PredicateRegistry

__all__ = [
    "DEFAULT_REGISTRY",
    "Field",
    "FilterOperator",
    "Range",
    "PredicateBuilder",
    "PredicateRegistry",
    "SortDirection",
    "StructuredQuery",
    "apply_structured_query",
    "build_default_registry",
    "build_eager_loads",
    "build_example_filter",
    "build_ordering",
    "build_query_filter",
    "build_read_omissions",
    "field_name",
    "resolve_attribute",
    "resolve_field_names",
]

from enum import Enum


class FilterOperator(str, Enum):
    """Predicate kinds a query clause can compile to."""

    EQ = "="
    LIKE = "like"
    BETWEEN = "between"
    IS_NULL = "is_null"

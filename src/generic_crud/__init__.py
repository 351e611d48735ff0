from .crud import GenericCRUD
from .exceptions import (
    CrudError,
    ExecutionError,
    FieldNotFoundError,
    MultipleResultsError,
    NotFoundError,
    RelationshipNotFoundError,
    SessionManagementError,
    UnitOfWorkError,
)
from .mixins import AuditableModelMixin, SoftDeleteModelMixin
from .models import Model, Record, is_zero
from .query import (
    FilterOperator,
    PredicateBuilder,
    PredicateRegistry,
    Range,
    SortDirection,
    StructuredQuery,
    apply_structured_query,
    build_default_registry,
    build_example_filter,
    build_query_filter,
)
from .uow import SQLAlchemyUnitOfWork

__all__ = [
    # CRUD
    "GenericCRUD",
    "SQLAlchemyUnitOfWork",
    # Models
    "Model",
    "Record",
    "is_zero",
    "AuditableModelMixin",
    "SoftDeleteModelMixin",
    # Query
    "StructuredQuery",
    "SortDirection",
    "Range",
    "FilterOperator",
    "PredicateBuilder",
    "PredicateRegistry",
    "build_default_registry",
    "build_example_filter",
    "build_query_filter",
    "apply_structured_query",
    # Exceptions
    "CrudError",
    "NotFoundError",
    "MultipleResultsError",
    "ExecutionError",
    "FieldNotFoundError",
    "RelationshipNotFoundError",
    "SessionManagementError",
    "UnitOfWorkError",
]

"""Exceptions for the generic CRUD layer."""

from __future__ import annotations

from difflib import get_close_matches
from typing import Any


class CrudError(Exception):
    """Root exception for every error raised by generic-crud."""

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.__class__.__name__,
            "message": str(self),
        }


class NotFoundError(CrudError):
    """Raised when a singleton lookup matched no record."""


class MultipleResultsError(CrudError):
    """Raised when a singleton lookup matched more than one record."""


class ExecutionError(CrudError):
    """Raised when the storage layer rejects or fails an operation."""


class SessionManagementError(ExecutionError):
    """Raised when session creation or management fails."""


class UnitOfWorkError(ExecutionError):
    """Raised when Unit of Work operations fail."""


class FieldNotFoundError(CrudError, ValueError):
    """
    A field selector names no mapped column.

    Uses fuzzy matching to suggest similar valid field names::

        Invalid field 'nmae' on 'User'.
        Did you mean one of these?
          • name

        Available fields: age, created_at, deleted_at, id, name, updated_at
    """

    def __init__(
        self,
        invalid_field: str,
        model_name: str,
        available_fields: list[str],
        cutoff: float = 0.6,
    ) -> None:
        self.invalid_field = invalid_field
        self.model_name = model_name
        self.available_fields = available_fields
        self.suggestions = get_close_matches(
            invalid_field, available_fields, n=5, cutoff=cutoff
        )
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        lines = [f"Invalid field '{self.invalid_field}' on '{self.model_name}'."]
        if self.suggestions:
            lines.append("Did you mean one of these?")
            for s in self.suggestions:
                lines.append(f"  • {s}")

        sorted_fields = sorted(self.available_fields)
        preview = ", ".join(sorted_fields[:15])
        if len(sorted_fields) > 15:
            preview += ", ..."
        lines.append(f"Available fields: {preview}")
        return "\n".join(lines)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "FIELD_NOT_FOUND",
            "field": self.invalid_field,
            "model": self.model_name,
            "suggestions": self.suggestions,
            "available_fields": sorted(self.available_fields),
        }


class RelationshipNotFoundError(ExecutionError):
    """An eager-load path names no relationship on the model."""

    def __init__(
        self,
        relationship: str,
        model_name: str,
        available: list[str],
        full_path: str | None = None,
    ) -> None:
        self.relationship = relationship
        self.model_name = model_name
        self.available = available
        self.full_path = full_path or relationship
        self.suggestions = get_close_matches(relationship, available, n=3, cutoff=0.6)

        message = (
            f"Cannot preload '{relationship}' on '{model_name}': "
            f"no such relationship. Full path: '{self.full_path}'"
        )
        if self.suggestions:
            message += f"\nDid you mean: {', '.join(self.suggestions)}?"
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "RELATIONSHIP_NOT_FOUND",
            "relationship": self.relationship,
            "model": self.model_name,
            "full_path": self.full_path,
            "suggestions": self.suggestions,
        }


__all__: list[str] = [
    "CrudError",
    "ExecutionError",
    "FieldNotFoundError",
    "MultipleResultsError",
    "NotFoundError",
    "RelationshipNotFoundError",
    "SessionManagementError",
    "UnitOfWorkError",
]

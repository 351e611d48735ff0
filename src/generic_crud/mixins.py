"""
SQLAlchemy column mixins for record timestamps and soft deletion.

Use these to build auditable or soft-deletable table models without
repeating column definitions. :class:`~generic_crud.models.Model` combines
both with an integer primary key.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, mapped_column

TIMESTAMP_FIELDS: tuple[str, ...] = ("created_at", "updated_at", "deleted_at")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditableModelMixin:
    """Adds created_at and updated_at columns, both maintained by the ORM."""

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        onupdate=utcnow,
        index=True,
    )


class SoftDeleteModelMixin:
    """
    Adds a nullable deleted_at marker.

    ``GenericCRUD`` treats rows with a non-null ``deleted_at`` as deleted:
    they are hidden from reads and updates, and ``delete`` stamps the column
    instead of removing the row.
    """

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, index=True
    )


__all__ = [
    "TIMESTAMP_FIELDS",
    "utcnow",
    "AuditableModelMixin",
    "SoftDeleteModelMixin",
]

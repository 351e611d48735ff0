"""Record capability protocol, zero-value rules and the default model mixin."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from sqlalchemy import Integer
from sqlalchemy.orm import Mapped, mapped_column

from .mixins import AuditableModelMixin, SoftDeleteModelMixin

_ZERO_COMPARABLE = (str, bytes, int, float, Decimal, list, tuple, dict, set, frozenset)


def is_zero(value: Any) -> bool:
    """
    Return ``True`` when *value* is the zero value of its type.

    ``None`` is always zero. Strings, bytes, numbers, booleans and builtin
    containers are zero when falsy. Everything else (datetimes, enums,
    UUIDs, ...) is only zero when ``None``.
    """
    if value is None:
        return True
    if isinstance(value, _ZERO_COMPARABLE):
        return not value
    return False


@runtime_checkable
class Record(Protocol):
    """
    Capability every record handled by ``GenericCRUD`` must provide.

    ``is_zero_field`` decides which attributes of an example instance are
    left out of a by-example filter. A zero-valued attribute can never be
    filtered on through an example; use ``StructuredQuery`` for that.
    """

    def primary_key(self) -> Any: ...

    def is_zero_field(self, name: str) -> bool: ...


class Model(AuditableModelMixin, SoftDeleteModelMixin):
    """
    Base mixin for records: integer ``id`` plus standard timestamps.

    Example::

        class User(Model, Base):
            __tablename__ = "users"
            name: Mapped[str] = mapped_column(String, default="")
    """

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    def primary_key(self) -> Any:
        return self.__dict__.get("id")

    def is_zero_field(self, name: str) -> bool:
        return is_zero(self.__dict__.get(name))


__all__ = ["Model", "Record", "is_zero"]

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from .exceptions import ExecutionError, MultipleResultsError, NotFoundError
from .mixins import TIMESTAMP_FIELDS, utcnow
from .models import Record, is_zero
from .query.compiler import (
    apply_structured_query,
    build_example_filter,
    build_read_omissions,
    resolve_field_names,
)
from .query.options import StructuredQuery, field_name
from .uow import SQLAlchemyUnitOfWork

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable, Iterable, Mapping

    from sqlalchemy import ColumnElement, Delete, Result, Select, Update
    from sqlalchemy.ext.asyncio import AsyncSession

    from .query.options import Field
    from .query.strategy import PredicateRegistry

    AsyncSessionFactory = Callable[[], AsyncSession]

T = TypeVar("T", bound=Record)

logger = logging.getLogger(__name__)


class GenericCRUD(Generic[T]):
    """
    Create/read/update/delete operations for one mapped record type.

    Lookups are driven either by a partially populated example instance
    (every non-zero column becomes an equality filter) or by an explicit
    :class:`StructuredQuery`::

        users = GenericCRUD(User, async_sessionmaker(engine, expire_on_commit=False))

        alice = await users.create(User(name="alice", age=30))
        same = await users.query_one(User(name="alice"))
        adults = await users.smart_query(
            StructuredQuery(between={"age": (18, 99)}, order_by=["-age"])
        )

    Every call runs in its own unit of work (commit on success, rollback on
    error) unless a caller-managed ``uow`` is passed, in which case the
    caller commits.

    ``omit`` is the default set of columns left out of writes; it defaults
    to the model's timestamp columns so those stay under ORM control.
    Column selectors may be strings or mapped attributes (``User.name``).

    With ``soft_delete`` enabled and a ``deleted_at`` column on the model,
    soft-deleted rows are invisible to reads and updates, and ``delete``
    stamps ``deleted_at`` unless ``hard=True``.
    """

    def __init__(
        self,
        model: type[T],
        session_factory: AsyncSessionFactory,
        *,
        omit: Iterable[Field] | None = None,
        soft_delete: bool = True,
        registry: PredicateRegistry | None = None,
    ) -> None:
        if not issubclass(model, Record):
            raise TypeError(
                f"{model.__name__} does not implement primary_key/is_zero_field"
            )
        mapper = sa_inspect(model)
        if len(mapper.primary_key) != 1:
            raise ValueError(
                f"{model.__name__} must have a single-column primary key, "
                f"got {len(mapper.primary_key)}"
            )

        factory_kw = getattr(session_factory, "kw", None)
        if factory_kw is not None and factory_kw.get("expire_on_commit", True):
            raise ValueError(
                "session_factory must be built with expire_on_commit=False; "
                "records returned after commit would otherwise be expired"
            )

        self.model = model
        self._session_factory = session_factory
        self._registry = registry
        self._pk_key = mapper.get_property_by_column(mapper.primary_key[0]).key
        self._pk_attr = getattr(model, self._pk_key)

        columns = {prop.key for prop in mapper.column_attrs}
        if omit is None:
            omit = [name for name in TIMESTAMP_FIELDS if name in columns]
        self.omit: frozenset[str] = resolve_field_names(model, omit)
        self._deleted_at = (
            getattr(model, "deleted_at")  # noqa: B009
            if soft_delete and "deleted_at" in columns
            else None
        )

    # -- session helpers ------------------------------------------------------

    @asynccontextmanager
    async def _session_scope(
        self,
        operation: str,
        uow: SQLAlchemyUnitOfWork | None,
    ) -> AsyncIterator[AsyncSession]:
        try:
            if uow is not None:
                yield uow.session
            else:
                async with SQLAlchemyUnitOfWork(
                    session_factory=self._session_factory
                ) as owned:
                    yield owned.session
        except SQLAlchemyError as exc:
            logger.warning("%s %s failed: %s", operation, self.model.__name__, exc)
            raise ExecutionError(
                f"{operation} {self.model.__name__} failed: {exc}"
            ) from exc

    async def _execute(
        self,
        session: AsyncSession,
        stmt: Select[Any] | Update | Delete,
    ) -> Result[Any]:
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("SQL: %s", stmt)
        return await session.execute(stmt)

    async def _resolve_one(self, session: AsyncSession, stmt: Select[Any]) -> T:
        """Run *stmt* expecting exactly one row: zero and many are errors."""
        result = await self._execute(session, stmt.limit(2))
        rows = list(result.scalars().all())
        if not rows:
            raise NotFoundError(f"{self.model.__name__} not found")
        if len(rows) > 1:
            raise MultipleResultsError(f"multiple {self.model.__name__} results found")
        return rows[0]  # type: ignore[no-any-return]

    # -- statement helpers ----------------------------------------------------

    def _scope(self) -> list[ColumnElement[bool]]:
        if self._deleted_at is None:
            return []
        return [self._deleted_at.is_(None)]

    def _select(self) -> Select[Any]:
        return select(self.model).where(*self._scope())

    def _update(self) -> Update:
        return update(self.model).where(*self._scope())

    def _select_example(self, example: T, omit: Iterable[Field] = ()) -> Select[Any]:
        stmt = self._select().where(
            *build_example_filter(example, registry=self._registry)
        )
        options = build_read_omissions(self.model, omit)
        if options:
            stmt = stmt.options(*options)
        return stmt

    def _write_omit(self, omit: Iterable[Field]) -> frozenset[str]:
        return self.omit | resolve_field_names(self.model, omit)

    def _require_pk(self, v: T, operation: str) -> Any:
        pk = v.primary_key()
        if is_zero(pk):
            raise ExecutionError(
                f"{operation} {self.model.__name__} requires a non-zero primary key"
            )
        return pk

    async def _insert(self, session: AsyncSession, v: T, omit: frozenset[str]) -> T:
        state = sa_inspect(v)
        values = {
            prop.key: state.dict[prop.key]
            for prop in state.mapper.column_attrs
            if prop.key not in omit and state.dict.get(prop.key) is not None
        }
        if is_zero(values.get(self._pk_key)):
            values.pop(self._pk_key, None)
        instance = self.model(**values)
        session.add(instance)
        logger.debug("INSERT %s columns=%s", self.model.__name__, sorted(values))
        await session.flush()
        await session.refresh(instance)
        return instance

    # -- create ---------------------------------------------------------------

    async def create(
        self,
        v: T,
        *omit: Field,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> T:
        """Insert the non-``None`` columns of *v*; omitted columns get defaults."""
        write_omit = self._write_omit(omit)
        async with self._session_scope("create", uow) as session:
            return await self._insert(session, v, write_omit)

    async def get_or_create(
        self,
        v: T,
        *omit: Field,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> T:
        """Return the first record matching example *v*, creating it if absent."""
        write_omit = self._write_omit(omit)
        stmt = self._select_example(v).order_by(self._pk_attr).limit(1)
        async with self._session_scope("get_or_create", uow) as session:
            found = (await self._execute(session, stmt)).scalars().first()
            if found is not None:
                return found  # type: ignore[no-any-return]
            return await self._insert(session, v, write_omit)

    # -- read -----------------------------------------------------------------

    async def get_by_id(
        self,
        v: T,
        *,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> T:
        """Fetch by ``v.primary_key()``; a zero key can never match."""
        pk = v.primary_key()
        if is_zero(pk):
            raise NotFoundError(f"{self.model.__name__} with zero primary key")
        stmt = self._select().where(self._pk_attr == pk)
        async with self._session_scope("get_by_id", uow) as session:
            return await self._resolve_one(session, stmt)

    async def query(
        self,
        v: T,
        *omit: Field,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> list[T]:
        """All records matching the non-zero columns of *v*."""
        stmt = self._select_example(v, omit)
        async with self._session_scope("query", uow) as session:
            return list((await self._execute(session, stmt)).scalars().all())

    async def query_one(
        self,
        v: T,
        *omit: Field,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> T:
        """
        Exactly one record matching the non-zero columns of *v*.

        Raises:
            NotFoundError: nothing matched.
            MultipleResultsError: more than one record matched.
        """
        stmt = self._select_example(v, omit)
        async with self._session_scope("query_one", uow) as session:
            return await self._resolve_one(session, stmt)

    async def query_map(
        self,
        m: Mapping[Field, Any],
        *,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> list[T]:
        return await self.smart_query(StructuredQuery(equal=m), uow=uow)

    async def query_map_one(
        self,
        m: Mapping[Field, Any],
        *,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> T:
        return await self.smart_query_one(StructuredQuery(equal=m), uow=uow)

    async def smart_query(
        self,
        q: StructuredQuery,
        *,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> list[T]:
        stmt = apply_structured_query(
            self._select(), self.model, q, registry=self._registry
        )
        async with self._session_scope("smart_query", uow) as session:
            return list((await self._execute(session, stmt)).scalars().all())

    async def smart_query_one(
        self,
        q: StructuredQuery,
        *,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> T:
        """Singleton resolution over a structured query; ``q.limit`` is ignored."""
        stmt = apply_structured_query(
            self._select(), self.model, q, registry=self._registry
        )
        async with self._session_scope("smart_query_one", uow) as session:
            return await self._resolve_one(session, stmt)

    # -- update ---------------------------------------------------------------

    async def update_field(
        self,
        v: T,
        column: Field,
        value: Any,
        *,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> None:
        """Set a single column on the record keyed by ``v.primary_key()``."""
        if field_name(column) in self.omit:
            logger.warning(
                "update_field on omitted column %s.%s skipped",
                self.model.__name__,
                field_name(column),
            )
            return
        pk = self._require_pk(v, "update_field")
        stmt = (
            self._update()
            .where(self._pk_attr == pk)
            .values({column: value})
        )
        async with self._session_scope("update_field", uow) as session:
            await self._execute(session, stmt)

    async def update(
        self,
        v: T,
        *omit: Field,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> None:
        """
        Update-by-example: write the non-zero columns of *v*, keyed by its
        primary key. Columns in the default omit set or in *omit* are not
        written.
        """
        pk = self._require_pk(v, "update")
        skip = self._write_omit(omit) | {self._pk_key}
        state = sa_inspect(v)
        values = {
            getattr(self.model, prop.key): state.dict[prop.key]
            for prop in state.mapper.column_attrs
            if prop.key not in skip and not v.is_zero_field(prop.key)
        }
        if not values:
            logger.debug("update %s pk=%s: nothing to write", self.model.__name__, pk)
            return
        stmt = self._update().where(self._pk_attr == pk).values(values)
        async with self._session_scope("update", uow) as session:
            await self._execute(session, stmt)

    async def update_map(
        self,
        v: T,
        m: Mapping[Field, Any],
        *omit: Field,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> None:
        """Write the explicit column mapping *m* on the record keyed by *v*."""
        pk = self._require_pk(v, "update_map")
        skip = self._write_omit(omit)
        values = {
            selector: value
            for selector, value in m.items()
            if field_name(selector) not in skip
        }
        if not values:
            logger.debug(
                "update_map %s pk=%s: nothing to write", self.model.__name__, pk
            )
            return
        stmt = self._update().where(self._pk_attr == pk).values(values)
        async with self._session_scope("update_map", uow) as session:
            await self._execute(session, stmt)

    # -- delete ---------------------------------------------------------------

    async def delete(
        self,
        v: T,
        *,
        hard: bool = False,
        uow: SQLAlchemyUnitOfWork | None = None,
    ) -> None:
        """Soft-delete (stamp ``deleted_at``) or, with ``hard``, remove the row."""
        pk = self._require_pk(v, "delete")
        stmt: Update | Delete
        if self._deleted_at is not None and not hard:
            stmt = (
                self._update()
                .where(self._pk_attr == pk)
                .values({self._deleted_at: utcnow()})
            )
        else:
            stmt = delete(self.model).where(self._pk_attr == pk)
        async with self._session_scope("delete", uow) as session:
            await self._execute(session, stmt)

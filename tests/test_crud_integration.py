"""
End-to-end tests for GenericCRUD against an in-memory SQLite database.

Covers:
- Create with default/call-level omissions
- Singleton lookups (get_by_id, query_one, query_map_one, smart_query_one)
- Structured queries: like, between, is_null, ordering, pagination, preload
- Update by example, by field and by mapping
- Soft and hard delete
- Caller-managed units of work
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import ForeignKey, Integer, String, event, func, select
from sqlalchemy.exc import InvalidRequestError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.pool import StaticPool

from generic_crud import (
    ExecutionError,
    FieldNotFoundError,
    GenericCRUD,
    Model,
    MultipleResultsError,
    NotFoundError,
    RelationshipNotFoundError,
    SortDirection,
    SQLAlchemyUnitOfWork,
    StructuredQuery,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from sqlalchemy.ext.asyncio import AsyncEngine

# ---------------------------------------------------------------------------
# Test models
# ---------------------------------------------------------------------------


class Base(DeclarativeBase):
    pass


class User(Model, Base):
    __tablename__ = "users"
    name: Mapped[str] = mapped_column(String, default="")
    age: Mapped[int | None] = mapped_column(Integer, nullable=True)
    posts: Mapped[list[Post]] = relationship(back_populates="user")


class Post(Model, Base):
    __tablename__ = "posts"
    title: Mapped[str] = mapped_column(String, default="")
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    user: Mapped[User] = relationship(back_populates="posts")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    eng = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

    @event.listens_for(eng.sync_engine, "connect")
    def _case_sensitive_like(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA case_sensitive_like=ON")
        cursor.close()

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest.fixture
def users(session_factory) -> GenericCRUD[User]:
    return GenericCRUD(User, session_factory)


@pytest.fixture
def posts(session_factory) -> GenericCRUD[Post]:
    return GenericCRUD(Post, session_factory)


@pytest.fixture
def all_users(session_factory) -> GenericCRUD[User]:
    """Sees soft-deleted rows too."""
    return GenericCRUD(User, session_factory, soft_delete=False)


async def _count_rows(session_factory) -> int:
    async with session_factory() as session:
        return (await session.execute(select(func.count()).select_from(User))).scalar_one()


# ---------------------------------------------------------------------------
# Construction
# ---------------------------------------------------------------------------


def test_default_omit_is_timestamp_columns(users):
    assert users.omit == frozenset({"created_at", "updated_at", "deleted_at"})


def test_explicit_omit_replaces_default(session_factory):
    crud = GenericCRUD(User, session_factory, omit=[User.age])
    assert crud.omit == frozenset({"age"})


def test_unknown_omit_is_rejected(session_factory):
    with pytest.raises(FieldNotFoundError):
        GenericCRUD(User, session_factory, omit=["nope"])


def test_non_record_model_is_rejected(session_factory):
    class Plain(Base):
        __tablename__ = "plain"
        id: Mapped[int] = mapped_column(Integer, primary_key=True)

    with pytest.raises(TypeError):
        GenericCRUD(Plain, session_factory)


def test_expiring_session_factory_is_rejected(engine):
    with pytest.raises(ValueError, match="expire_on_commit=False"):
        GenericCRUD(User, async_sessionmaker(engine))


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_create_assigns_key_and_timestamps(users):
    user = await users.create(User(name="alice", age=30))

    assert user.id > 0
    assert user.name == "alice"
    assert user.created_at is not None
    assert user.updated_at is not None
    assert user.deleted_at is None


@pytest.mark.asyncio()
async def test_create_ignores_supplied_timestamps(users):
    stale = datetime(2000, 1, 1)
    user = await users.create(User(name="bob", created_at=stale))
    assert user.created_at != stale


@pytest.mark.asyncio()
async def test_create_zero_key_is_generated(users):
    created = await users.create(User(id=0, name="zero"))

    assert created.id != 0
    assert (await users.get_by_id(created)).name == "zero"


@pytest.mark.asyncio()
async def test_create_call_level_omit_adds_to_default(users):
    user = await users.create(User(name="carol", age=41), "age")
    assert user.age is None
    assert user.created_at is not None


@pytest.mark.asyncio()
async def test_create_duplicate_key_raises_execution_error(users, session_factory):
    await users.create(User(id=1, name="a"))
    with pytest.raises(ExecutionError):
        await users.create(User(id=1, name="b"))
    assert await _count_rows(session_factory) == 1


@pytest.mark.asyncio()
async def test_get_or_create_is_idempotent(users, session_factory):
    first = await users.get_or_create(User(name="dave", age=5))
    second = await users.get_or_create(User(name="dave", age=5))

    assert first.id == second.id
    assert await _count_rows(session_factory) == 1


# ---------------------------------------------------------------------------
# Singleton lookups
# ---------------------------------------------------------------------------


@pytest.fixture
async def two_named_a(users):
    await users.create(User(id=1, name="a"))
    await users.create(User(id=2, name="a"))


@pytest.mark.asyncio()
async def test_query_one_multiple_results(users, two_named_a):
    with pytest.raises(MultipleResultsError):
        await users.query_one(User(name="a"))


@pytest.mark.asyncio()
async def test_query_one_not_found(users, two_named_a):
    with pytest.raises(NotFoundError):
        await users.query_one(User(name="zzz"))


@pytest.mark.asyncio()
async def test_query_one_by_key(users, two_named_a):
    user = await users.query_one(User(id=1))
    assert user.id == 1
    assert user.name == "a"


@pytest.mark.asyncio()
async def test_get_by_id(users, two_named_a):
    user = await users.get_by_id(User(id=2))
    assert user.id == 2


@pytest.mark.asyncio()
async def test_get_by_id_ignores_other_example_fields(users, two_named_a):
    user = await users.get_by_id(User(id=2, name="ignored"))
    assert user.name == "a"


@pytest.mark.asyncio()
async def test_get_by_id_zero_key_not_found(users, two_named_a):
    with pytest.raises(NotFoundError):
        await users.get_by_id(User(name="a"))


@pytest.mark.asyncio()
async def test_get_by_id_missing(users, two_named_a):
    with pytest.raises(NotFoundError):
        await users.get_by_id(User(id=99))


@pytest.mark.asyncio()
async def test_query_map_variants(users, two_named_a):
    await users.create(User(id=3, name="b"))

    assert len(await users.query_map({"name": "a"})) == 2
    assert (await users.query_map_one({User.name: "b"})).id == 3
    with pytest.raises(MultipleResultsError):
        await users.query_map_one({"name": "a"})


@pytest.mark.asyncio()
async def test_empty_example_returns_everything(users, two_named_a):
    assert len(await users.query(User())) == 2


# ---------------------------------------------------------------------------
# Structured queries
# ---------------------------------------------------------------------------


@pytest.fixture
async def people(users):
    for name, age in [("test", 10), ("testing", 20), ("TEST", 30), ("other", None)]:
        await users.create(User(name=name, age=age))


@pytest.mark.asyncio()
async def test_like_is_substring_and_case_sensitive(users, people):
    rows = await users.smart_query(StructuredQuery(like={"name": "es"}, order_by=["name"]))
    assert [u.name for u in rows] == ["test", "testing"]


@pytest.mark.asyncio()
async def test_between_is_inclusive(users, people):
    rows = await users.smart_query(
        StructuredQuery(between={User.age: (10, 20)}, order_by=["age"])
    )
    assert [u.age for u in rows] == [10, 20]


@pytest.mark.asyncio()
async def test_between_on_timestamps(users):
    first = await users.create(User(name="first"))
    second = await users.create(User(name="second"))
    await users.create(User(name="third"))

    rows = await users.smart_query(
        StructuredQuery(between={"created_at": (first.created_at, second.created_at)})
    )
    ids = {u.id for u in rows}
    assert {first.id, second.id} <= ids
    assert all(first.created_at <= u.created_at <= second.created_at for u in rows)


@pytest.mark.asyncio()
async def test_is_null(users, people):
    (row,) = await users.smart_query(StructuredQuery(is_null=["age"]))
    assert row.name == "other"


@pytest.mark.asyncio()
async def test_clauses_are_anded(users, people):
    rows = await users.smart_query(
        StructuredQuery(like={"name": "test"}, between={"age": (15, 40)})
    )
    assert [u.name for u in rows] == ["testing"]


@pytest.mark.asyncio()
async def test_ordering_and_pagination(users, people):
    q = StructuredQuery(
        between={"age": (0, 100)},
        order_by=[("age", SortDirection.DESC)],
        limit=2,
        offset=1,
    )
    rows = await users.smart_query(q)
    assert [u.age for u in rows] == [20, 10]


@pytest.mark.asyncio()
async def test_ordering_is_repeatable(users, people):
    q = StructuredQuery(order_by={"name": "desc", "id": "asc"})
    first = [u.id for u in await users.smart_query(q)]
    second = [u.id for u in await users.smart_query(q)]
    assert first == second


@pytest.mark.asyncio()
async def test_smart_query_one_ignores_limit(users, people):
    with pytest.raises(MultipleResultsError):
        await users.smart_query_one(StructuredQuery(like={"name": "test"}, limit=1))


@pytest.mark.asyncio()
async def test_unknown_filter_column_surfaces_as_execution_error(users, people):
    with pytest.raises(ExecutionError):
        await users.smart_query(StructuredQuery(equal={"nickname": "x"}))


@pytest.mark.asyncio()
async def test_preload_relationship(users, posts):
    author = await users.create(User(name="writer"))
    await posts.create(Post(title="one", user_id=author.id))
    await posts.create(Post(title="two", user_id=author.id))

    loaded = await users.smart_query_one(
        StructuredQuery(equal={"id": author.id}, preload=["posts"])
    )
    assert sorted(p.title for p in loaded.posts) == ["one", "two"]


@pytest.mark.asyncio()
async def test_preload_unknown_relationship(users):
    with pytest.raises(RelationshipNotFoundError):
        await users.smart_query(StructuredQuery(preload=["comments"]))


@pytest.mark.asyncio()
async def test_read_omit_defers_column(users, people, session_factory):
    async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
        (row,) = await users.query(User(name="TEST"), "age", uow=uow)
        assert row.name == "TEST"
        with pytest.raises(InvalidRequestError, match="raiseload"):
            _ = row.age


@pytest.mark.asyncio()
async def test_read_omit_unknown_column(users):
    with pytest.raises(FieldNotFoundError):
        await users.smart_query(StructuredQuery(omit=["nope"]))


# ---------------------------------------------------------------------------
# Update
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_update_writes_only_non_zero_fields(users):
    user = await users.create(User(name="before", age=7))

    await users.update(User(id=user.id, name="after", age=0))

    fetched = await users.get_by_id(User(id=user.id))
    assert fetched.name == "after"
    assert fetched.age == 7
    assert fetched.updated_at >= user.updated_at


@pytest.mark.asyncio()
async def test_update_call_level_omit(users):
    user = await users.create(User(name="keep", age=7))

    await users.update(User(id=user.id, name="changed", age=8), "name")

    fetched = await users.get_by_id(User(id=user.id))
    assert fetched.name == "keep"
    assert fetched.age == 8


@pytest.mark.asyncio()
async def test_update_call_level_omit_keeps_timestamps_out(users):
    user = await users.create(User(name="stamped", age=1))

    await users.update(
        User(id=user.id, name="ignored", age=2, created_at=datetime(2000, 1, 1)),
        "name",
    )

    fetched = await users.get_by_id(User(id=user.id))
    assert fetched.name == "stamped"
    assert fetched.age == 2
    assert fetched.created_at == user.created_at


@pytest.mark.asyncio()
async def test_update_requires_key(users):
    with pytest.raises(ExecutionError):
        await users.update(User(name="nobody"))


@pytest.mark.asyncio()
async def test_update_field_can_write_zero(users):
    user = await users.create(User(name="zero", age=9))

    await users.update_field(User(id=user.id), "age", 0)
    await users.update_field(User(id=user.id), User.name, "")

    fetched = await users.get_by_id(User(id=user.id))
    assert fetched.age == 0
    assert fetched.name == ""


@pytest.mark.asyncio()
async def test_update_field_on_omitted_column_is_noop(users):
    user = await users.create(User(name="stamp"))

    await users.update_field(User(id=user.id), "created_at", datetime(2000, 1, 1))

    fetched = await users.get_by_id(User(id=user.id))
    assert fetched.created_at == user.created_at


@pytest.mark.asyncio()
async def test_update_map(users):
    user = await users.create(User(name="map", age=3))

    await users.update_map(User(id=user.id), {"name": "mapped", User.age: 0})

    fetched = await users.get_by_id(User(id=user.id))
    assert fetched.name == "mapped"
    assert fetched.age == 0


@pytest.mark.asyncio()
async def test_update_map_respects_omit(users):
    user = await users.create(User(name="map", age=3))

    await users.update_map(User(id=user.id), {"name": "x", "age": 4}, "age")

    fetched = await users.get_by_id(User(id=user.id))
    assert fetched.name == "x"
    assert fetched.age == 3


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_soft_delete_hides_record(users, all_users, session_factory):
    user = await users.create(User(name="ghost"))

    await users.delete(User(id=user.id))

    with pytest.raises(NotFoundError):
        await users.get_by_id(User(id=user.id))
    assert await users.query(User(name="ghost")) == []
    hidden = await all_users.get_by_id(User(id=user.id))
    assert hidden.deleted_at is not None
    assert await _count_rows(session_factory) == 1


@pytest.mark.asyncio()
async def test_soft_deleted_record_is_not_updated(users, all_users):
    user = await users.create(User(name="ghost"))
    await users.delete(User(id=user.id))

    await users.update(User(id=user.id, name="revived"))

    assert (await all_users.get_by_id(User(id=user.id))).name == "ghost"


@pytest.mark.asyncio()
async def test_hard_delete_removes_row(users, session_factory):
    user = await users.create(User(name="gone"))

    await users.delete(User(id=user.id), hard=True)

    assert await _count_rows(session_factory) == 0


@pytest.mark.asyncio()
async def test_delete_requires_key(users):
    with pytest.raises(ExecutionError):
        await users.delete(User(name="nobody"))


# ---------------------------------------------------------------------------
# Caller-managed unit of work
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_caller_uow_commits_all_operations(users, session_factory):
    async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
        await users.create(User(name="one"), uow=uow)
        await users.create(User(name="two"), uow=uow)
        assert len(await users.query(User(), uow=uow)) == 2

    assert await _count_rows(session_factory) == 2


@pytest.mark.asyncio()
async def test_caller_uow_rolls_back_on_error(users, session_factory):
    async def _failing_batch():
        async with SQLAlchemyUnitOfWork(session_factory=session_factory) as uow:
            await users.create(User(name="one"), uow=uow)
            raise RuntimeError("abort")

    with pytest.raises(RuntimeError, match="abort"):
        await _failing_batch()

    assert await _count_rows(session_factory) == 0

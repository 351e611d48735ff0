"""
SQLAlchemy implementation of the Unit of Work pattern.
"""

from __future__ import annotations

import contextlib
import logging
from typing import TYPE_CHECKING

from .exceptions import SessionManagementError, UnitOfWorkError

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from sqlalchemy.ext.asyncio import AsyncSession

    AsyncSessionFactory = Callable[[], AsyncSession]

logger = logging.getLogger(__name__)


class SQLAlchemyUnitOfWork:
    """
    One transaction on an ``AsyncSession``: commit on clean exit, rollback
    when the block raises.

    Supports two usage patterns:

    1. **Caller-Managed Sessions**:
       ```python
       async with SQLAlchemyUnitOfWork(session=session) as uow:
           await crud.create(User(name="a"), uow=uow)
       ```
       The session lifecycle belongs to the caller.

    2. **Self-Managed Sessions**:
       ```python
       factory = async_sessionmaker(engine, expire_on_commit=False)
       async with SQLAlchemyUnitOfWork(session_factory=factory) as uow:
           ...
       ```
       The UoW creates and closes the session. ``GenericCRUD`` uses this
       form for every call that is not given a ``uow``.

    **Important:** Exactly one of `session` or `session_factory` must be provided.
    """

    def __init__(
        self,
        session: AsyncSession | None = None,
        session_factory: AsyncSessionFactory | None = None,
    ) -> None:
        if session is not None and session_factory is not None:
            raise SessionManagementError(
                "Cannot provide both 'session' and 'session_factory'. "
                "Use either caller-managed (session) or self-managed "
                "(session_factory) pattern."
            )

        if session is None and session_factory is None:
            raise SessionManagementError(
                "Must provide either 'session' or 'session_factory'. "
                "Use caller-managed pattern with session=(AsyncSession) "
                "or self-managed pattern with session_factory=(callable)."
            )

        self._session: AsyncSession | None = session
        self._session_factory = session_factory
        self._owns_session = session_factory is not None and session is None

    @property
    def session(self) -> AsyncSession:
        """Get the active session. Raises if session not yet created."""
        if self._session is None:
            raise UnitOfWorkError(
                "Session not yet created. Ensure __aenter__ was called."
            )
        return self._session

    async def __aenter__(self) -> SQLAlchemyUnitOfWork:
        """Begin a transaction, creating session if factory provided."""
        try:
            if self._owns_session and self._session_factory:
                self._session = self._session_factory()

            if not self.session.in_transaction():
                await self.session.begin()

            return self
        except Exception as e:  # noqa: BLE001
            if isinstance(e, SessionManagementError | UnitOfWorkError):
                raise
            raise SessionManagementError(f"Failed to initialize UoW: {e}") from e

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Commit or rollback, closing the session if factory-created."""
        try:
            if exc_type is None:
                await self.commit()
            else:
                logger.debug("Rolling back after %s", exc_type.__name__)
                await self.rollback()
        finally:
            if self._owns_session and self._session is not None:
                try:
                    await self._session.close()
                except Exception as e:  # noqa: BLE001
                    raise SessionManagementError(f"Failed to close session: {e}") from e
                finally:
                    self._session = None

    async def commit(self) -> None:
        """Commit the current transaction."""
        try:
            await self.session.commit()
        except Exception as e:  # noqa: BLE001
            # Constraint violations, network errors, ...
            with contextlib.suppress(Exception):
                await self.rollback()
            raise UnitOfWorkError(f"Failed to commit transaction: {e}") from e

    async def rollback(self) -> None:
        """Rollback the current transaction."""
        try:
            if self.session.in_transaction():
                await self.session.rollback()
        except Exception as e:  # noqa: BLE001
            raise UnitOfWorkError(f"Failed to rollback transaction: {e}") from e

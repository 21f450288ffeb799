"""
Generic async repository (Data Access Layer).

Implements the Repository pattern on top of SQLAlchemy's ``AsyncSession``.
Concrete ledger repositories inherit from ``BaseRepository[T]`` and add the
filtered queries and guarded updates their entity needs.

- **IntegrityError** is NOT caught here.  The merge resolver relies on it to
  detect a lost race on the open-position unique index.
- **OperationalError** (connection loss, deadlock) rolls the session back and
  is re-raised, so a broken transaction never leaks into the next call.
- Ledger rows are never deleted, so there is no delete operation.
"""

import logging
from typing import Any, Generic, Optional, Type, TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Executable
from sqlmodel import SQLModel

from vaultflow.core.resilience import db_circuit_breaker

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)


class BaseRepository(Generic[ModelType]):
    """
    Generic CRUD repository for SQLModel entities.

    Parameters
    ----------
    model : Type[ModelType]
        The SQLModel class this repository manages.
    db : AsyncSession
        An active async database session.  Request handlers get one per
        request; background pollers open their own.

    Every database call is routed through the global ``db_circuit_breaker``.
    """

    def __init__(self, model: Type[ModelType], db: AsyncSession):
        self.model = model
        self.db = db

    # ── Internal helpers ──

    async def _execute_with_circuit_breaker(self, func: Any, *args: Any, **kwargs: Any) -> Any:
        return await db_circuit_breaker.call(func, *args, **kwargs)

    async def _commit(self, operation: str) -> None:
        try:
            await self.db.commit()
        except OperationalError:
            await self.db.rollback()
            logger.error("OperationalError during %s for %s", operation, self.model.__name__)
            raise

    # ── CRUD ──

    async def get(self, id: Any, refresh: bool = False) -> Optional[ModelType]:
        """
        Fetch a single entity by primary key.  Returns ``None`` if not found.

        ``refresh=True`` bypasses the identity map, which is needed after a
        bulk ``UPDATE`` statement changed the row behind the session's back.
        """

        async def _get() -> Optional[ModelType]:
            return await self.db.get(self.model, id, populate_existing=refresh)

        return await self._execute_with_circuit_breaker(_get)

    async def create(self, obj_in: ModelType, *statements: Executable) -> ModelType:
        """
        Insert a new entity and return the refreshed instance.

        Extra ``statements`` run in the same transaction, so the insert and
        those writes are committed together or not at all.
        """

        async def _create() -> ModelType:
            self.db.add(obj_in)
            for stmt in statements:
                try:
                    await self.db.execute(stmt)
                except OperationalError:
                    await self.db.rollback()
                    logger.error("OperationalError during create for %s", self.model.__name__)
                    raise
            await self._commit("create")
            await self.db.refresh(obj_in)
            return obj_in

        return await self._execute_with_circuit_breaker(_create)

    async def execute_write(self, stmt: Executable) -> int:
        """
        Execute a single UPDATE statement, commit, and return the row count.

        Used for guarded writes (``… WHERE status = 'pending'``) where the
        row count tells the caller whether the guard held.
        """

        async def _write() -> int:
            result = await self.db.execute(stmt)
            await self._commit("guarded write")
            return result.rowcount

        return await self._execute_with_circuit_breaker(_write)

"""
Movement repository: data-access layer for ``investment_movements``.

The only status write is :meth:`MovementRepository.mark_terminal`, which is
conditional on the row still being ``pending``.  That keeps terminal states
immutable even when two pollers observe the same receipt.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.future import select

from vaultflow.models.movement import Movement, MovementStatus, MovementType
from vaultflow.repositories.base import BaseRepository


class MovementRepository(BaseRepository[Movement]):
    """Concrete repository for :class:`Movement` entities."""

    async def get_by_profile(
        self, profile_id: UUID, skip: int = 0, limit: int = 50
    ) -> List[Movement]:
        """Movement history for a profile, newest first."""

        async def _query() -> List[Movement]:
            stmt = (
                select(self.model)
                .where(self.model.profile_id == profile_id)
                .order_by(self.model.created_at.desc())
                .offset(skip)
                .limit(limit)
            )
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

        return await self._execute_with_circuit_breaker(_query)

    async def get_by_investment(
        self, investment_id: UUID, movement_type: Optional[MovementType] = None
    ) -> List[Movement]:
        """All movements of one investment, newest first."""

        async def _query() -> List[Movement]:
            stmt = select(self.model).where(self.model.investment_id == investment_id)
            if movement_type is not None:
                stmt = stmt.where(self.model.movement_type == movement_type)
            stmt = stmt.order_by(self.model.created_at.desc())
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

        return await self._execute_with_circuit_breaker(_query)

    async def mark_terminal(
        self,
        movement_id: UUID,
        status: MovementStatus,
        tx_hash: Optional[str] = None,
    ) -> bool:
        """
        Move a pending movement to ``confirmed`` / ``failed``.

        ``tx_hash`` (when given) replaces the provisional reference in the
        same statement.  Returns ``False`` if the movement was already
        terminal or does not exist; nothing is written in that case.
        """
        if status == MovementStatus.PENDING:
            raise ValueError("mark_terminal requires a terminal status")

        values = {"status": status, "updated_at": datetime.now(timezone.utc)}
        if tx_hash:
            values["tx_hash"] = tx_hash

        stmt = (
            update(self.model)
            .where(
                self.model.id == movement_id,
                self.model.status == MovementStatus.PENDING,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self.execute_write(stmt) > 0

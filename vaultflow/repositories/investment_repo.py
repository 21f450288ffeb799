"""
Investment repository: data-access layer for the ``investments`` table.

Adds the open-position lookup used by the merge resolver, an atomic
extension of an open position, and status transitions.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy import update
from sqlalchemy.future import select
from sqlalchemy.sql import Executable

from vaultflow.models.investment import (
    OPEN_INVESTMENT_STATUSES,
    Investment,
    InvestmentStatus,
)
from vaultflow.repositories.base import BaseRepository


class InvestmentRepository(BaseRepository[Investment]):
    """Concrete repository for :class:`Investment` entities."""

    async def get_open_for_vault(
        self, profile_id: UUID, vault_address: str
    ) -> Optional[Investment]:
        """
        Return the most recent pending/active investment for (profile, vault).

        The partial unique index guarantees at most one such row; ordering by
        ``created_at`` keeps the answer deterministic on databases that
        predate the index.
        """

        async def _query() -> Optional[Investment]:
            stmt = (
                select(self.model)
                .where(
                    self.model.profile_id == profile_id,
                    self.model.vault_address == vault_address,
                    self.model.status.in_(OPEN_INVESTMENT_STATUSES),
                )
                .order_by(self.model.created_at.desc())
                .limit(1)
            )
            result = await self.db.execute(stmt)
            return result.scalars().first()

        return await self._execute_with_circuit_breaker(_query)

    async def get_by_profile(
        self,
        profile_id: UUID,
        statuses: Optional[tuple] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Investment]:
        """Return a profile's investments, newest first, optionally filtered by status."""

        async def _query() -> List[Investment]:
            stmt = select(self.model).where(self.model.profile_id == profile_id)
            if statuses:
                stmt = stmt.where(self.model.status.in_(statuses))
            stmt = stmt.order_by(self.model.created_at.desc()).offset(skip).limit(limit)
            result = await self.db.execute(stmt)
            return list(result.scalars().all())

        return await self._execute_with_circuit_breaker(_query)

    async def extend_open(
        self, investment_id: UUID, amount: Decimal, apr: Optional[Decimal]
    ) -> Optional[Investment]:
        """
        Add ``amount`` to an open investment and reset it to ``pending``.

        Runs as one ``UPDATE … SET amount_invested = amount_invested + :amount``
        guarded by the open-status predicate, so two concurrent extensions
        cannot lose an update.  Returns ``None`` when the row is no longer
        open (it failed in the meantime).
        """
        values = {
            "amount_invested": self.model.amount_invested + amount,
            "status": InvestmentStatus.PENDING,
            "updated_at": datetime.now(timezone.utc),
        }
        if apr is not None:
            values["apr"] = apr

        stmt = (
            update(self.model)
            .where(
                self.model.id == investment_id,
                self.model.status.in_(OPEN_INVESTMENT_STATUSES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if await self.execute_write(stmt) == 0:
            return None
        return await self.get(investment_id, refresh=True)

    async def set_status(self, investment_id: UUID, status: InvestmentStatus) -> bool:
        """Set the investment's status.  Returns ``False`` if the row does not exist."""
        stmt = (
            update(self.model)
            .where(self.model.id == investment_id)
            .values(status=status, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return await self.execute_write(stmt) > 0

    def rewards_increment(self, investment_id: UUID, amount: Decimal) -> Executable:
        """UPDATE adding ``amount`` to ``current_rewards``, for use inside another write."""
        return (
            update(self.model)
            .where(self.model.id == investment_id)
            .values(
                current_rewards=self.model.current_rewards + amount,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )

"""
Investment service: read side of the investment ledger.

Caching:
    Both reads go through the in-memory TTL cache under the ``investments:``
    prefix.  Deposits, reward records and confirmation writes invalidate it.
"""

import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from vaultflow.core.cache import INVESTMENTS_PREFIX, cache
from vaultflow.models.investment import OPEN_INVESTMENT_STATUSES, Investment, InvestmentStatus
from vaultflow.models.movement import MovementStatus, MovementType
from vaultflow.repositories.investment_repo import InvestmentRepository
from vaultflow.repositories.movement_repo import MovementRepository
from vaultflow.schemas.investment import InvestmentSummary, VaultPosition

logger = logging.getLogger(__name__)


class InvestmentService:
    """Listing and portfolio summary for a profile's investments."""

    def __init__(self, invest_repo: InvestmentRepository, movement_repo: MovementRepository):
        self._invest_repo = invest_repo
        self._movement_repo = movement_repo

    # ── Queries ──

    async def get_investments_by_profile(
        self,
        profile_id: UUID,
        status: Optional[InvestmentStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> List[Investment]:
        """Return a profile's investments, newest first (cache-backed)."""
        status_key = status.value if status else "all"
        cache_key = f"{INVESTMENTS_PREFIX}{profile_id}:{status_key}:{skip}:{limit}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        investments = await self._invest_repo.get_by_profile(
            profile_id,
            statuses=(status,) if status else None,
            skip=skip,
            limit=limit,
        )
        cache.set(cache_key, investments)
        return investments

    async def get_summary(self, profile_id: UUID) -> InvestmentSummary:
        """
        Per-vault totals for the profile's open positions.

        A position's invested total is the sum of its deposit movements that
        did not fail, so a deposit still waiting for confirmation already
        counts.  If the movements cannot be read, ``amount_invested`` is used
        instead.
        """
        cache_key = f"{INVESTMENTS_PREFIX}{profile_id}:summary"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        investments = await self._invest_repo.get_by_profile(
            profile_id, statuses=OPEN_INVESTMENT_STATUSES
        )

        positions = []
        for investment in investments:
            invested = await self._invested_total(investment)
            rewards = investment.current_rewards or Decimal("0")
            positions.append(
                VaultPosition(
                    investment_id=investment.id,
                    investment_name=investment.investment_name,
                    investment_type=investment.investment_type,
                    vault_address=investment.vault_address,
                    status=investment.status,
                    apr=investment.apr,
                    total_invested=invested,
                    current_rewards=rewards,
                    total_value=invested + rewards,
                )
            )

        total_invested = sum((p.total_invested for p in positions), Decimal("0"))
        total_rewards = sum((p.current_rewards for p in positions), Decimal("0"))
        summary = InvestmentSummary(
            profile_id=profile_id,
            positions=positions,
            total_invested=total_invested,
            total_rewards=total_rewards,
            total_value=total_invested + total_rewards,
        )
        cache.set(cache_key, summary)
        return summary

    async def _invested_total(self, investment: Investment) -> Decimal:
        try:
            deposits = await self._movement_repo.get_by_investment(
                investment.id, movement_type=MovementType.DEPOSIT
            )
        except Exception as exc:
            logger.warning(
                "Could not read deposits for investment %s, using amount_invested: %s",
                investment.id,
                exc,
                extra={"investment_id": str(investment.id)},
            )
            return investment.amount_invested

        return sum(
            (m.amount for m in deposits if m.status != MovementStatus.FAILED),
            Decimal("0"),
        )

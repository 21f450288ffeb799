"""
Movement service: movement lookups, history and reward recording.

The single-movement lookup is what clients poll while a deposit confirms, so
it always reads the database.  History lists are cached under the
``movements:`` prefix.
"""

import logging
from typing import List
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from vaultflow.core.cache import INVESTMENTS_PREFIX, MOVEMENTS_PREFIX, cache
from vaultflow.core.config import settings
from vaultflow.core.exceptions import BusinessRuleViolation, NotFoundException
from vaultflow.models.movement import Movement, MovementStatus, MovementType
from vaultflow.repositories.investment_repo import InvestmentRepository
from vaultflow.repositories.movement_repo import MovementRepository
from vaultflow.schemas.movement import RewardCreate

logger = logging.getLogger(__name__)


class MovementService:
    def __init__(self, movement_repo: MovementRepository, invest_repo: InvestmentRepository):
        self._movement_repo = movement_repo
        self._invest_repo = invest_repo

    # ── Queries ──

    async def get_movement(self, movement_id: UUID) -> Movement:
        """Current state of one movement, read fresh from the database."""
        movement = await self._movement_repo.get(movement_id, refresh=True)
        if not movement:
            raise NotFoundException("Movement", movement_id)
        return movement

    async def get_movements_by_profile(
        self, profile_id: UUID, skip: int = 0, limit: int = 50
    ) -> List[Movement]:
        cache_key = f"{MOVEMENTS_PREFIX}profile:{profile_id}:{skip}:{limit}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        movements = await self._movement_repo.get_by_profile(profile_id, skip=skip, limit=limit)
        cache.set(cache_key, movements)
        return movements

    async def get_movements_by_investment(self, investment_id: UUID) -> List[Movement]:
        """
        All movements of one investment, newest first.

        The investment is validated first so the caller gets a 404 instead
        of an empty list when it does not exist.
        """
        investment = await self._invest_repo.get(investment_id)
        if not investment:
            raise NotFoundException("Investment", investment_id)

        cache_key = f"{MOVEMENTS_PREFIX}investment:{investment_id}"
        cached = cache.get(cache_key)
        if cached is not None:
            return cached

        movements = await self._movement_repo.get_by_investment(investment_id)
        cache.set(cache_key, movements)
        return movements

    # ── Commands ──

    async def record_reward(self, investment_id: UUID, reward_in: RewardCreate) -> Movement:
        """
        Record yield paid out to an open position.

        Rewards are recorded after the fact, so the movement is created
        directly as ``confirmed``.  The insert and the ``current_rewards``
        increment share one commit.
        """
        investment = await self._invest_repo.get(investment_id)
        if not investment:
            raise NotFoundException("Investment", investment_id)
        if not investment.is_open:
            raise BusinessRuleViolation(
                f"Investment '{investment.investment_name}' is {investment.status.value} "
                "and cannot accrue rewards"
            )

        movement = Movement(
            profile_id=investment.profile_id,
            investment_id=investment.id,
            movement_type=MovementType.REWARD,
            amount=reward_in.amount,
            token=settings.TOKEN_SYMBOL,
            tx_hash=reward_in.tx_hash,
            chain=settings.CHAIN_NAME,
            status=MovementStatus.CONFIRMED,
            details={"vault_address": investment.vault_address},
        )
        try:
            created = await self._movement_repo.create(
                movement, self._invest_repo.rewards_increment(investment.id, reward_in.amount)
            )
        except IntegrityError as exc:
            await self._movement_repo.db.rollback()
            logger.warning("IntegrityError recording reward for %s: %s", investment_id, exc)
            raise BusinessRuleViolation(
                "Reward could not be recorded: the investment may have been removed."
            )

        cache.invalidate(MOVEMENTS_PREFIX, INVESTMENTS_PREFIX)
        logger.info(
            "Recorded reward of %s %s for investment %s",
            reward_in.amount,
            settings.TOKEN_SYMBOL,
            investment.id,
            extra={"investment_id": str(investment.id), "movement_id": str(created.id)},
        )
        return created

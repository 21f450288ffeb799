"""
Investment merge resolution.

Before anything is submitted on-chain, a deposit intent is either folded into
the user's open position in that vault or opens a new one.

Two concurrent deposits for the same (profile, vault) are handled at two
levels:

1. Inside one process, resolutions for the same key are serialized with an
   asyncio lock.
2. Across processes, the partial unique index on open positions rejects the
   second INSERT; the loser rolls back, finds the winner's row, and extends
   it with an atomic increment.
"""

import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from decimal import Decimal
from typing import AsyncIterator, Dict, Hashable, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError

from vaultflow.core.exceptions import ConflictException
from vaultflow.models.investment import Investment, InvestmentStatus, InvestmentType
from vaultflow.repositories.investment_repo import InvestmentRepository

logger = logging.getLogger(__name__)

MAX_RESOLVE_ATTEMPTS = 2


class KeyedLocks:
    """One asyncio lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = defaultdict(int)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]


merge_locks = KeyedLocks()


@dataclass(frozen=True)
class MergeResolution:
    investment: Investment
    is_additional_deposit: bool


class InvestmentMergeResolver:
    """Creates or extends the open investment for a deposit intent."""

    def __init__(self, invest_repo: InvestmentRepository, locks: KeyedLocks = merge_locks):
        self._repo = invest_repo
        self._locks = locks

    async def resolve(
        self,
        profile_id: UUID,
        vault_address: str,
        amount: Decimal,
        investment_name: str,
        investment_type: InvestmentType = InvestmentType.MORPHO_VAULT,
        apr: Optional[Decimal] = None,
    ) -> MergeResolution:
        """
        Return the investment this deposit belongs to.

        - Open position exists → ``amount_invested += amount``, status back to
          ``pending``, ``apr`` refreshed.
        - Otherwise → new ``pending`` investment for ``amount``.
        """
        vault_address = vault_address.lower()

        async with self._locks.hold((profile_id, vault_address)):
            for attempt in range(1, MAX_RESOLVE_ATTEMPTS + 1):
                existing = await self._repo.get_open_for_vault(profile_id, vault_address)
                if existing is not None:
                    extended = await self._repo.extend_open(existing.id, amount, apr)
                    if extended is not None:
                        logger.info(
                            "Extended investment %s by %s (now %s)",
                            extended.id,
                            amount,
                            extended.amount_invested,
                            extra={"investment_id": str(extended.id)},
                        )
                        return MergeResolution(extended, is_additional_deposit=True)
                    logger.info("Investment %s closed before it could be extended", existing.id)
                    continue

                investment = Investment(
                    profile_id=profile_id,
                    vault_address=vault_address,
                    investment_name=investment_name,
                    investment_type=investment_type,
                    amount_invested=amount,
                    apr=apr,
                    status=InvestmentStatus.PENDING,
                )
                try:
                    created = await self._repo.create(investment)
                except IntegrityError as exc:
                    await self._repo.db.rollback()
                    logger.warning(
                        "Open position for profile %s / vault %s created concurrently "
                        "(attempt %d/%d): %s",
                        profile_id,
                        vault_address,
                        attempt,
                        MAX_RESOLVE_ATTEMPTS,
                        exc,
                    )
                    continue

                logger.info(
                    "Created investment %s in vault %s for %s",
                    created.id,
                    vault_address,
                    amount,
                    extra={"investment_id": str(created.id)},
                )
                return MergeResolution(created, is_additional_deposit=False)

        raise ConflictException(
            "Another deposit into this vault is being recorded. Please retry."
        )

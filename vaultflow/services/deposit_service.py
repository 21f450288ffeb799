"""
Deposit orchestrator: the public entry point of the deposit flow.

Flow for one deposit intent::

    validate signer + amount
      → switch chain (if needed)
      → merge into / create the open investment      (ledger, pre-submission)
      → submit approve + deposit                     (chain)
      → record pending movement, mark investment active   (ledger, post-submission)
      → schedule confirmation poller                 (background)
      → return immediately with status "pending"

Ledger errors before submission propagate: nothing reached the chain yet.
Ledger errors after submission are logged as discrepancies with the on-chain
reference and never surfaced, since the user's funds have already moved.
"""

import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional
from uuid import UUID

from vaultflow.chain.abi import to_base_units
from vaultflow.chain.gateway import ChainGateway
from vaultflow.chain.signer import SignerContext
from vaultflow.core.cache import INVESTMENTS_PREFIX, MOVEMENTS_PREFIX, cache
from vaultflow.core.config import settings
from vaultflow.core.exceptions import (
    BusinessRuleViolation,
    SubmissionError,
    WalletNotConnectedException,
)
from vaultflow.models.investment import InvestmentStatus
from vaultflow.models.movement import Movement, MovementStatus, MovementType
from vaultflow.repositories.investment_repo import InvestmentRepository
from vaultflow.repositories.movement_repo import MovementRepository
from vaultflow.schemas.deposit import DepositCreate
from vaultflow.services.merge_resolver import InvestmentMergeResolver, MergeResolution
from vaultflow.services.poller import ConfirmationPoller, PollerRegistry
from vaultflow.services.submission import (
    SequentialSubmission,
    SubmissionPath,
    SubmissionResult,
    SubmissionStrategySelector,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepositResult:
    investment_id: UUID
    movement_id: Optional[UUID]
    submitted_tx_ref: str
    submission_path: SubmissionPath
    status: MovementStatus
    is_additional_deposit: bool


class DepositService:
    """
    Coordinates merge resolution, submission and confirmation for deposits.

    Parameters
    ----------
    invest_repo, movement_repo
        Repositories bound to the request's session.
    gateway : ChainGateway
        Used for chain switching; submission goes through ``selector``.
    selector : SubmissionStrategySelector
        Batch-then-sequential submission.
    poller : ConfirmationPoller
        Handed to ``registry`` for every recorded movement.
    registry : PollerRegistry
        Owns the background poller tasks.
    """

    def __init__(
        self,
        invest_repo: InvestmentRepository,
        movement_repo: MovementRepository,
        gateway: ChainGateway,
        selector: SubmissionStrategySelector,
        poller: ConfirmationPoller,
        registry: PollerRegistry,
        resolver: Optional[InvestmentMergeResolver] = None,
    ):
        self._invest_repo = invest_repo
        self._movement_repo = movement_repo
        self._gateway = gateway
        self._selector = selector
        self._poller = poller
        self._registry = registry
        self._resolver = resolver or InvestmentMergeResolver(invest_repo)

    async def deposit(self, signer: SignerContext, deposit_in: DepositCreate) -> DepositResult:
        """
        Submit a deposit and return without waiting for confirmation.

        Raises
        ------
        WalletNotConnectedException
            ``signer`` has no address.
        BusinessRuleViolation
            Amount is not positive or exceeds the token's precision.
        SubmissionError
            Chain switch failed, or both submission paths failed.  In the
            latter case the investment has been marked ``failed``.
        """
        # 1 ─ Preconditions
        if not signer.is_connected:
            raise WalletNotConnectedException()
        try:
            base_units = to_base_units(deposit_in.amount, settings.TOKEN_DECIMALS)
        except ValueError as exc:
            raise BusinessRuleViolation(str(exc))

        signer = await self._ensure_chain(signer)

        # 2 ─ Merge (errors propagate: nothing is on-chain yet)
        resolution = await self._resolver.resolve(
            profile_id=deposit_in.profile_id,
            vault_address=deposit_in.vault_address,
            amount=deposit_in.amount,
            investment_name=deposit_in.investment_name,
            investment_type=deposit_in.investment_type,
            apr=deposit_in.apr,
        )
        investment_id = resolution.investment.id

        # 3 ─ Submit
        try:
            submission = await self._selector.submit(signer, deposit_in.vault_address, base_units)
        except SubmissionError:
            await self._mark_investment_failed(investment_id)
            cache.invalidate(INVESTMENTS_PREFIX)
            raise

        # 4 ─ Record (errors logged, never surfaced)
        movement_id = await self._record_movement(deposit_in, resolution, submission)
        await self._activate_investment(investment_id, submission)

        # 5 ─ Confirm in the background
        if movement_id is not None:
            self._registry.schedule(self._poller, submission, movement_id)

        cache.invalidate(INVESTMENTS_PREFIX, MOVEMENTS_PREFIX)

        logger.info(
            "Deposit of %s %s into %s submitted via %s path (%s)",
            deposit_in.amount,
            settings.TOKEN_SYMBOL,
            deposit_in.vault_address,
            submission.path.value,
            "additional" if resolution.is_additional_deposit else "new position",
            extra={
                "investment_id": str(investment_id),
                "movement_id": str(movement_id) if movement_id else None,
                "tx_ref": submission.tx_ref,
            },
        )
        return DepositResult(
            investment_id=investment_id,
            movement_id=movement_id,
            submitted_tx_ref=submission.tx_ref,
            submission_path=submission.path,
            status=MovementStatus.PENDING,
            is_additional_deposit=resolution.is_additional_deposit,
        )

    # ── Helpers ──

    async def _ensure_chain(self, signer: SignerContext) -> SignerContext:
        """Switch the wallet to the configured chain; returns the signer bound to it."""
        if signer.chain_id == settings.CHAIN_ID:
            return signer
        logger.info(
            "Wallet on chain %d, switching to %s (%d)",
            signer.chain_id,
            settings.CHAIN_NAME,
            settings.CHAIN_ID,
        )
        try:
            await self._gateway.switch_chain(settings.CHAIN_ID)
        except Exception as exc:
            raise SubmissionError(
                f"Please switch your wallet to the {settings.CHAIN_NAME} network: {exc}",
                cause=exc,
            ) from exc
        return replace(signer, chain_id=settings.CHAIN_ID)

    async def _mark_investment_failed(self, investment_id: UUID) -> None:
        try:
            await self._invest_repo.set_status(investment_id, InvestmentStatus.FAILED)
        except Exception as exc:
            await self._safe_rollback()
            logger.error(
                "Could not mark investment %s failed after submission error: %s",
                investment_id,
                exc,
                extra={"investment_id": str(investment_id)},
            )

    async def _record_movement(
        self,
        deposit_in: DepositCreate,
        resolution: MergeResolution,
        submission: SubmissionResult,
    ) -> Optional[UUID]:
        details = {
            "vault_address": deposit_in.vault_address,
            "investment_type": deposit_in.investment_type.value,
            "investment_name": deposit_in.investment_name,
            "apr": str(deposit_in.apr) if deposit_in.apr is not None else None,
            "is_additional_deposit": resolution.is_additional_deposit,
            "submission_path": submission.path.value,
        }
        if isinstance(submission, SequentialSubmission) and submission.approval_tx_hash:
            details["approval_tx_hash"] = submission.approval_tx_hash

        movement = Movement(
            profile_id=deposit_in.profile_id,
            investment_id=resolution.investment.id,
            movement_type=MovementType.DEPOSIT,
            amount=Decimal(deposit_in.amount),
            token=settings.TOKEN_SYMBOL,
            tx_hash=submission.tx_ref,
            chain=settings.CHAIN_NAME,
            status=MovementStatus.PENDING,
            details=details,
        )
        try:
            created = await self._movement_repo.create(movement)
        except Exception as exc:
            await self._safe_rollback()
            logger.error(
                "LEDGER DISCREPANCY: deposit %s reached the chain but its movement "
                "could not be recorded: %s",
                submission.tx_ref,
                exc,
                extra={
                    "investment_id": str(resolution.investment.id),
                    "tx_ref": submission.tx_ref,
                },
            )
            return None
        return created.id

    async def _activate_investment(self, investment_id: UUID, submission: SubmissionResult) -> None:
        try:
            await self._invest_repo.set_status(investment_id, InvestmentStatus.ACTIVE)
        except Exception as exc:
            await self._safe_rollback()
            logger.error(
                "LEDGER DISCREPANCY: investment %s stays pending although deposit %s "
                "was submitted: %s",
                investment_id,
                submission.tx_ref,
                exc,
                extra={"investment_id": str(investment_id), "tx_ref": submission.tx_ref},
            )

    async def _safe_rollback(self) -> None:
        try:
            await self._invest_repo.db.rollback()
        except Exception as exc:
            logger.warning("Session rollback failed: %s", exc)

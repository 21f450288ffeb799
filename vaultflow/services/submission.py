"""
Submission strategy for the approve + deposit pair.

The atomic path sends both calls as one EIP-5792 batch.  Wallets that do not
support batching, reject it, or fail in any other way fall back to two
sequential transactions, where the deposit is only sent once the approval
receipt is on-chain.

The result is a tagged variant because confirmation differs per path: a
batch yields a batch identifier that must later be resolved to a real
transaction hash, a sequential deposit hash is already final.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

from vaultflow.chain.abi import encode_approve, encode_deposit
from vaultflow.chain.gateway import ChainGateway, ContractCall
from vaultflow.chain.signer import SignerContext
from vaultflow.core.exceptions import SubmissionError
from vaultflow.services.allowance import AllowanceInspector

logger = logging.getLogger(__name__)


class SubmissionPath(str, Enum):
    BATCH = "batch"
    SEQUENTIAL = "sequential"


@dataclass(frozen=True)
class BatchSubmission:
    batch_id: str

    path = SubmissionPath.BATCH

    @property
    def tx_ref(self) -> str:
        return self.batch_id


@dataclass(frozen=True)
class SequentialSubmission:
    tx_hash: str
    approval_tx_hash: Optional[str] = None

    path = SubmissionPath.SEQUENTIAL

    @property
    def tx_ref(self) -> str:
        return self.tx_hash


SubmissionResult = Union[BatchSubmission, SequentialSubmission]


class ApprovalError(Exception):
    """The approval transaction reverted or never confirmed within the wait bound."""


class SubmissionStrategySelector:
    """
    Executes approve + deposit through the best path the wallet supports.

    Parameters
    ----------
    gateway : ChainGateway
        Wallet / chain access.
    inspector : AllowanceInspector
        Used on the sequential path only.
    token_address : str
        ERC-20 token being deposited.
    approval_max_attempts, approval_interval : int, float
        Receipt polling bound while waiting for the approval (default 60 x 2s).
    """

    def __init__(
        self,
        gateway: ChainGateway,
        inspector: AllowanceInspector,
        token_address: str,
        approval_max_attempts: int = 60,
        approval_interval: float = 2.0,
    ):
        self._gateway = gateway
        self._inspector = inspector
        self._token_address = token_address
        self._approval_max_attempts = approval_max_attempts
        self._approval_interval = approval_interval

    def build_calls(self, signer: SignerContext, vault_address: str, amount: int) -> List[ContractCall]:
        """approve(vault, amount) on the token, then deposit(amount, signer) on the vault.

        The approval is for exactly ``amount``, never unlimited.
        """
        return [
            ContractCall(to=self._token_address, data=encode_approve(vault_address, amount)),
            ContractCall(to=vault_address, data=encode_deposit(amount, signer.address)),
        ]

    async def submit(
        self, signer: SignerContext, vault_address: str, amount: int
    ) -> SubmissionResult:
        """
        Submit the deposit.  Raises :class:`SubmissionError` if both paths fail.

        ``amount`` is in token base units.
        """
        approve_call, deposit_call = self.build_calls(signer, vault_address, amount)

        try:
            batch_id = await self._gateway.send_calls(
                signer.address, signer.chain_id, [approve_call, deposit_call]
            )
            if not batch_id:
                raise ValueError("wallet returned an empty batch identifier")
            logger.info("Atomic batch accepted for vault %s: %s", vault_address, batch_id)
            return BatchSubmission(batch_id=batch_id)
        except Exception as exc:
            logger.warning(
                "Atomic batch failed for vault %s, falling back to sequential: %s",
                vault_address,
                exc,
            )

        try:
            return await self._submit_sequential(signer, vault_address, amount, approve_call, deposit_call)
        except Exception as exc:
            logger.error("Sequential submission failed for vault %s: %s", vault_address, exc)
            raise SubmissionError(f"Investment failed: {exc}", cause=exc) from exc

    async def _submit_sequential(
        self,
        signer: SignerContext,
        vault_address: str,
        amount: int,
        approve_call: ContractCall,
        deposit_call: ContractCall,
    ) -> SequentialSubmission:
        approval_tx_hash = None
        if await self._inspector.needs_approval(signer.address, vault_address, amount):
            approval_tx_hash = await self._gateway.send_transaction(
                signer.address, signer.chain_id, approve_call
            )
            logger.info("Approval submitted, waiting for receipt: %s", approval_tx_hash)
            await self._wait_for_approval(approval_tx_hash)
        else:
            logger.info("Sufficient allowance for vault %s, skipping approval", vault_address)

        tx_hash = await self._gateway.send_transaction(signer.address, signer.chain_id, deposit_call)
        logger.info("Deposit submitted sequentially: %s", tx_hash, extra={"tx_ref": tx_hash})
        return SequentialSubmission(tx_hash=tx_hash, approval_tx_hash=approval_tx_hash)

    async def _wait_for_approval(self, tx_hash: str) -> None:
        """Block until the approval receipt reports success.

        A reverted approval or an exhausted wait raises :class:`ApprovalError`;
        receipt lookup errors use up one attempt and are retried.
        """
        for attempt in range(1, self._approval_max_attempts + 1):
            try:
                receipt = await self._gateway.get_transaction_receipt(tx_hash)
            except Exception as exc:
                logger.warning(
                    "Receipt lookup for approval %s failed (attempt %d/%d): %s",
                    tx_hash,
                    attempt,
                    self._approval_max_attempts,
                    exc,
                )
                receipt = None

            status = receipt.get("status") if receipt else None
            if status == "0x1":
                logger.info("Approval confirmed: %s", tx_hash)
                return
            if status == "0x0":
                raise ApprovalError(f"Approval transaction {tx_hash} reverted")

            if attempt < self._approval_max_attempts:
                await asyncio.sleep(self._approval_interval)

        raise ApprovalError(f"Approval transaction {tx_hash} took too long to confirm")

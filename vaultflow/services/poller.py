"""
Confirmation polling.

A :class:`ConfirmationPoller` turns a provisional submission into a terminal
movement status.  It runs as a background task owned by the
:class:`PollerRegistry`, not by the request that scheduled it, and stops on
its own after ``max_attempts`` checks.  When the bound runs out the movement
simply stays ``pending``.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from vaultflow.chain.gateway import ChainGateway
from vaultflow.core.cache import INVESTMENTS_PREFIX, MOVEMENTS_PREFIX, cache
from vaultflow.models.movement import Movement, MovementStatus
from vaultflow.repositories.movement_repo import MovementRepository
from vaultflow.services.submission import BatchSubmission, SequentialSubmission, SubmissionResult

logger = logging.getLogger(__name__)

CALLS_STATUS_CONFIRMED = 200
RECEIPT_SUCCESS = "0x1"


@dataclass(frozen=True)
class ChainOutcome:
    """Terminal on-chain result.  ``tx_hash`` is set only when it must replace a batch id."""

    status: MovementStatus
    tx_hash: Optional[str] = None


class ConfirmationPoller:
    """
    Polls the chain until a submission is final, then records it once.

    Parameters
    ----------
    gateway : ChainGateway
        Source of batch status and receipts.
    session_factory : callable
        Returns a new ``AsyncSession``; each write uses its own session
        because the poller outlives the request session.
    max_attempts : int
        Number of status checks before giving up (default 30).
    interval : float
        Seconds between checks (default 2).
    """

    def __init__(
        self,
        gateway: ChainGateway,
        session_factory: Callable[[], AsyncSession],
        max_attempts: int = 30,
        interval: float = 2.0,
    ):
        self._gateway = gateway
        self._session_factory = session_factory
        self.max_attempts = max_attempts
        self.interval = interval

    async def check(self, submission: SubmissionResult) -> Optional[ChainOutcome]:
        """One status check.  ``None`` means not final yet."""
        if isinstance(submission, BatchSubmission):
            status = await self._gateway.get_calls_status(submission.batch_id)
            receipts = status.get("receipts") or []
            if status.get("status") == CALLS_STATUS_CONFIRMED and receipts:
                receipt = receipts[0]
                return ChainOutcome(
                    status=(
                        MovementStatus.CONFIRMED
                        if receipt.get("status") == RECEIPT_SUCCESS
                        else MovementStatus.FAILED
                    ),
                    tx_hash=receipt.get("transactionHash"),
                )
            return None

        if isinstance(submission, SequentialSubmission):
            receipt = await self._gateway.get_transaction_receipt(submission.tx_hash)
            if receipt and receipt.get("status"):
                return ChainOutcome(
                    status=(
                        MovementStatus.CONFIRMED
                        if receipt["status"] == RECEIPT_SUCCESS
                        else MovementStatus.FAILED
                    ),
                )
            return None

        raise TypeError(f"Unknown submission type: {type(submission).__name__}")

    async def _record(self, movement_id: UUID, outcome: ChainOutcome) -> bool:
        async with self._session_factory() as session:
            repo = MovementRepository(Movement, session)
            written = await repo.mark_terminal(movement_id, outcome.status, outcome.tx_hash)

        cache.invalidate(MOVEMENTS_PREFIX, INVESTMENTS_PREFIX)
        if written:
            logger.info(
                "Movement %s %s",
                movement_id,
                outcome.status.value,
                extra={"movement_id": str(movement_id), "tx_ref": outcome.tx_hash},
            )
        else:
            logger.info(
                "Movement %s already terminal, %s result not written",
                movement_id,
                outcome.status.value,
                extra={"movement_id": str(movement_id)},
            )
        return written

    async def poll(self, submission: SubmissionResult, movement_id: UUID) -> Optional[MovementStatus]:
        """
        Run the polling loop.

        Returns the terminal status observed, or ``None`` if the bound was
        exhausted.  Lookup and write errors are treated as transient and
        retried on the next interval.
        """
        for attempt in range(1, self.max_attempts + 1):
            try:
                outcome = await self.check(submission)
                if outcome is not None:
                    await self._record(movement_id, outcome)
                    return outcome.status
            except Exception as exc:
                logger.warning(
                    "Confirmation check %d/%d for movement %s failed: %s",
                    attempt,
                    self.max_attempts,
                    movement_id,
                    exc,
                    extra={"movement_id": str(movement_id), "tx_ref": submission.tx_ref},
                )

            if attempt < self.max_attempts:
                await asyncio.sleep(self.interval)

        logger.warning(
            "Confirmation polling for movement %s gave up after %d attempts; it stays pending",
            movement_id,
            self.max_attempts,
            extra={"movement_id": str(movement_id), "tx_ref": submission.tx_ref},
        )
        return None


class PollerRegistry:
    """
    Background poller tasks keyed by movement id.

    Holding the task references keeps them alive after the request returns
    and lets a second schedule for the same movement be detected and dropped.
    """

    def __init__(self) -> None:
        self._tasks: Dict[UUID, asyncio.Task] = {}

    def is_polling(self, movement_id: UUID) -> bool:
        task = self._tasks.get(movement_id)
        return task is not None and not task.done()

    def schedule(
        self, poller: ConfirmationPoller, submission: SubmissionResult, movement_id: UUID
    ) -> bool:
        """Start polling ``movement_id``.  Returns ``False`` if a poller is already running."""
        if self.is_polling(movement_id):
            logger.info(
                "Poller for movement %s already running; duplicate suppressed",
                movement_id,
                extra={"movement_id": str(movement_id)},
            )
            return False

        task = asyncio.create_task(
            poller.poll(submission, movement_id), name=f"confirm-{movement_id}"
        )
        self._tasks[movement_id] = task
        task.add_done_callback(lambda t: self._on_done(movement_id, t))
        return True

    def _on_done(self, movement_id: UUID, task: asyncio.Task) -> None:
        if self._tasks.get(movement_id) is task:
            del self._tasks[movement_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Poller for movement %s crashed",
                movement_id,
                exc_info=task.exception(),
                extra={"movement_id": str(movement_id)},
            )

    async def wait_all(self) -> None:
        """Wait for every running poller to finish."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def shutdown(self) -> int:
        """Cancel outstanding pollers at process shutdown.  Returns how many were cancelled."""
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.warning("Cancelled %d confirmation pollers at shutdown", len(tasks))
        self._tasks.clear()
        return len(tasks)

    def get_status(self) -> dict:
        return {"active_pollers": sum(1 for t in self._tasks.values() if not t.done())}


poller_registry = PollerRegistry()

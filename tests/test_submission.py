"""
Unit tests for SubmissionStrategySelector.

Tests cover:
- Atomic batch success (approve + deposit in one wallet_sendCalls)
- Fallback on batch failure, with and without approval
- Approval confirmed strictly before the deposit is sent
- Approval reverted / never confirmed
- Both paths failing → SubmissionError with the cause attached
"""

from unittest.mock import AsyncMock, patch

import pytest

from vaultflow.chain.gateway import ChainRPCError
from vaultflow.chain.signer import SignerContext
from vaultflow.core.exceptions import SubmissionError
from vaultflow.services.allowance import AllowanceInspector
from vaultflow.services.submission import (
    ApprovalError,
    BatchSubmission,
    SequentialSubmission,
    SubmissionPath,
    SubmissionStrategySelector,
)

from .conftest import APPROVE_TX, BATCH_ID, DEPOSIT_TX, TOKEN, VAULT, WALLET

AMOUNT = 100_000_000
SIGNER = SignerContext(address=WALLET, chain_id=8453)


def _word(value: int) -> str:
    return "0x" + format(value, "064x")


@pytest.fixture()
def selector(gateway):
    return SubmissionStrategySelector(
        gateway=gateway,
        inspector=AllowanceInspector(gateway, TOKEN),
        token_address=TOKEN,
        approval_max_attempts=5,
        approval_interval=0.0,
    )


class TestBuildCalls:
    def test_exact_approval_then_deposit(self, selector):
        approve, deposit = selector.build_calls(SIGNER, VAULT, AMOUNT)

        assert approve.to == TOKEN
        assert approve.data.startswith("0x095ea7b3")
        assert int(approve.data[74:], 16) == AMOUNT
        assert deposit.to == VAULT
        assert deposit.data.startswith("0x6e553f65")
        assert deposit.data.endswith(WALLET[2:])


class TestBatchPath:
    @pytest.mark.asyncio
    async def test_batch_success(self, selector, gateway):
        result = await selector.submit(SIGNER, VAULT, AMOUNT)

        assert isinstance(result, BatchSubmission)
        assert result.batch_id == BATCH_ID
        assert result.path == SubmissionPath.BATCH
        assert result.tx_ref == BATCH_ID
        assert gateway.methods() == ["wallet_sendCalls"]
        _, calls = gateway.calls[0]
        assert [c.to for c in calls] == [TOKEN, VAULT]

    @pytest.mark.asyncio
    async def test_empty_batch_id_falls_back(self, selector, gateway):
        gateway.batch_result = ""
        gateway.allowance_result = _word(AMOUNT)

        result = await selector.submit(SIGNER, VAULT, AMOUNT)

        assert isinstance(result, SequentialSubmission)


class TestSequentialFallback:
    @pytest.mark.asyncio
    async def test_sufficient_allowance_sends_only_deposit(self, selector, gateway):
        gateway.batch_result = ChainRPCError("wallet_sendCalls", "Method not supported")
        gateway.allowance_result = _word(AMOUNT)

        result = await selector.submit(SIGNER, VAULT, AMOUNT)

        assert isinstance(result, SequentialSubmission)
        assert result.tx_hash == DEPOSIT_TX
        assert result.approval_tx_hash is None
        assert result.path == SubmissionPath.SEQUENTIAL
        assert gateway.methods() == ["wallet_sendCalls", "eth_call", "eth_sendTransaction"]
        _, deposit_call = gateway.calls[-1]
        assert deposit_call.to == VAULT

    @pytest.mark.asyncio
    async def test_approval_confirmed_before_deposit(self, selector, gateway):
        gateway.batch_result = ChainRPCError("wallet_sendCalls", "rejected")
        gateway.allowance_result = _word(0)
        gateway.send_results = [APPROVE_TX, DEPOSIT_TX]
        gateway.receipts[APPROVE_TX] = [None, None, {"status": "0x1"}]

        result = await selector.submit(SIGNER, VAULT, AMOUNT)

        assert result == SequentialSubmission(tx_hash=DEPOSIT_TX, approval_tx_hash=APPROVE_TX)
        methods = gateway.methods()
        assert methods == [
            "wallet_sendCalls",
            "eth_call",
            "eth_sendTransaction",
            "eth_getTransactionReceipt",
            "eth_getTransactionReceipt",
            "eth_getTransactionReceipt",
            "eth_sendTransaction",
        ]
        approve_call = gateway.calls[2][1]
        deposit_call = gateway.calls[-1][1]
        assert approve_call.to == TOKEN
        assert deposit_call.to == VAULT

    @pytest.mark.asyncio
    async def test_receipt_lookup_errors_are_retried(self, selector, gateway):
        gateway.batch_result = ChainRPCError("wallet_sendCalls", "rejected")
        gateway.send_results = [APPROVE_TX, DEPOSIT_TX]
        gateway.receipts[APPROVE_TX] = [ChainRPCError("eth_getTransactionReceipt", "timeout"), {"status": "0x1"}]

        result = await selector.submit(SIGNER, VAULT, AMOUNT)

        assert result.tx_hash == DEPOSIT_TX

    @pytest.mark.asyncio
    async def test_allowance_check_failure_sends_approval(self, selector, gateway):
        gateway.batch_result = ChainRPCError("wallet_sendCalls", "rejected")
        gateway.allowance_result = ChainRPCError("eth_call", "timeout")
        gateway.send_results = [APPROVE_TX, DEPOSIT_TX]
        gateway.receipts[APPROVE_TX] = [{"status": "0x1"}]

        result = await selector.submit(SIGNER, VAULT, AMOUNT)

        assert result.approval_tx_hash == APPROVE_TX

    @pytest.mark.asyncio
    async def test_reverted_approval_never_sends_deposit(self, selector, gateway):
        gateway.batch_result = ChainRPCError("wallet_sendCalls", "rejected")
        gateway.send_results = [APPROVE_TX, DEPOSIT_TX]
        gateway.receipts[APPROVE_TX] = [{"status": "0x0"}]

        with pytest.raises(SubmissionError) as exc_info:
            await selector.submit(SIGNER, VAULT, AMOUNT)

        assert isinstance(exc_info.value.cause, ApprovalError)
        assert "reverted" in exc_info.value.message
        assert gateway.methods().count("eth_sendTransaction") == 1

    @pytest.mark.asyncio
    async def test_approval_wait_is_bounded(self, selector, gateway):
        gateway.batch_result = ChainRPCError("wallet_sendCalls", "rejected")
        gateway.send_results = [APPROVE_TX, DEPOSIT_TX]

        with pytest.raises(SubmissionError) as exc_info:
            await selector.submit(SIGNER, VAULT, AMOUNT)

        assert "took too long" in exc_info.value.message
        assert gateway.methods().count("eth_getTransactionReceipt") == 5
        assert gateway.methods().count("eth_sendTransaction") == 1

    @pytest.mark.asyncio
    async def test_sleeps_between_approval_checks_only(self, gateway):
        selector = SubmissionStrategySelector(
            gateway=gateway,
            inspector=AllowanceInspector(gateway, TOKEN),
            token_address=TOKEN,
            approval_max_attempts=3,
            approval_interval=2.0,
        )
        gateway.batch_result = ChainRPCError("wallet_sendCalls", "rejected")
        gateway.send_results = [APPROVE_TX, DEPOSIT_TX]

        with patch("vaultflow.services.submission.asyncio.sleep", new_callable=AsyncMock) as sleep:
            with pytest.raises(SubmissionError):
                await selector.submit(SIGNER, VAULT, AMOUNT)

        assert sleep.await_count == 2
        sleep.assert_awaited_with(2.0)


class TestBothPathsFail:
    @pytest.mark.asyncio
    async def test_deposit_rejection_raises_submission_error(self, selector, gateway):
        gateway.batch_result = ChainRPCError("wallet_sendCalls", "rejected")
        gateway.allowance_result = _word(AMOUNT)
        cause = ChainRPCError("eth_sendTransaction", "User rejected the request", 4001)
        gateway.send_results = [cause]

        with pytest.raises(SubmissionError) as exc_info:
            await selector.submit(SIGNER, VAULT, AMOUNT)

        assert exc_info.value.cause is cause
        assert exc_info.value.status_code == 502
        assert exc_info.value.message.startswith("Investment failed:")

"""
Integration tests for the API endpoints using httpx AsyncClient.

These tests exercise the full FastAPI request → endpoint → service pipeline,
with mocked service layers to isolate from the database and the chain.
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from vaultflow.core.exceptions import (
    BusinessRuleViolation,
    NotFoundException,
    SubmissionError,
    WalletNotConnectedException,
    add_exception_handlers,
)
from vaultflow.models.movement import MovementStatus, MovementType
from vaultflow.services.deposit_service import DepositResult
from vaultflow.services.submission import SubmissionPath

from .conftest import (
    BATCH_ID,
    INVESTMENT_ID,
    MOVEMENT_ID,
    PROFILE_ID,
    VAULT,
    WALLET,
    make_investment,
    make_movement,
)

# ────────────────────────────────────────────────────────────────────────────
# Test app factory
# ────────────────────────────────────────────────────────────────────────────


def _make_test_app() -> FastAPI:
    """
    Build a minimal FastAPI app with the real routers but
    NO database or lifespan. Services are injected via overrides.
    """
    from vaultflow.api.v1.api import api_router

    app = FastAPI()
    add_exception_handlers(app)
    app.include_router(api_router, prefix="/api/v1")
    return app


async def _request(app: FastAPI, method: str, url: str, **kwargs):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        return await client.request(method, url, **kwargs)


def _deposit_body(**overrides) -> dict:
    body = {
        "profile_id": str(PROFILE_ID),
        "vault_address": VAULT,
        "amount": "100.0",
        "investment_name": "Steakhouse USDC",
        "apr": "5.25",
        "wallet_address": WALLET,
        "chain_id": 8453,
    }
    body.update(overrides)
    return body


# ────────────────────────────────────────────────────────────────────────────
# Deposits endpoint tests
# ────────────────────────────────────────────────────────────────────────────


class TestDepositsEndpoint:
    """Tests for POST /api/v1/deposits."""

    @pytest.fixture(autouse=True)
    def _setup(self):
        from vaultflow.api.v1.endpoints.deposits import _get_deposit_service

        self.app = _make_test_app()
        self.mock_service = AsyncMock()
        self.app.dependency_overrides[_get_deposit_service] = lambda: self.mock_service

    @pytest.mark.asyncio
    async def test_deposit_202(self):
        self.mock_service.deposit.return_value = DepositResult(
            investment_id=INVESTMENT_ID,
            movement_id=MOVEMENT_ID,
            submitted_tx_ref=BATCH_ID,
            submission_path=SubmissionPath.BATCH,
            status=MovementStatus.PENDING,
            is_additional_deposit=False,
        )

        resp = await _request(self.app, "POST", "/api/v1/deposits", json=_deposit_body())

        assert resp.status_code == 202
        data = resp.json()
        assert data["investment_id"] == str(INVESTMENT_ID)
        assert data["movement_id"] == str(MOVEMENT_ID)
        assert data["submitted_tx_ref"] == BATCH_ID
        assert data["submission_path"] == "batch"
        assert data["status"] == "pending"

    @pytest.mark.asyncio
    async def test_signer_and_intent_split(self):
        self.mock_service.deposit.return_value = DepositResult(
            investment_id=INVESTMENT_ID,
            movement_id=None,
            submitted_tx_ref=BATCH_ID,
            submission_path=SubmissionPath.BATCH,
            status=MovementStatus.PENDING,
            is_additional_deposit=True,
        )

        await _request(self.app, "POST", "/api/v1/deposits", json=_deposit_body(chain_id=1))

        signer, intent = self.mock_service.deposit.await_args.args
        assert signer.address == WALLET
        assert signer.chain_id == 1
        assert intent.vault_address == VAULT
        assert not hasattr(intent, "wallet_address")

    @pytest.mark.asyncio
    async def test_wallet_not_connected_409(self):
        self.mock_service.deposit.side_effect = WalletNotConnectedException()

        resp = await _request(self.app, "POST", "/api/v1/deposits", json=_deposit_body(wallet_address=None))

        assert resp.status_code == 409
        assert resp.json()["error"] is True

    @pytest.mark.asyncio
    async def test_precision_violation_422(self):
        self.mock_service.deposit.side_effect = BusinessRuleViolation("Amount 1.0000001 has more than 6 decimal places")

        resp = await _request(self.app, "POST", "/api/v1/deposits", json=_deposit_body(amount="1.0000001"))

        assert resp.status_code == 422
        assert "decimal places" in resp.json()["message"]

    @pytest.mark.asyncio
    async def test_submission_failure_502(self):
        self.mock_service.deposit.side_effect = SubmissionError("Investment failed: User rejected the request")

        resp = await _request(self.app, "POST", "/api/v1/deposits", json=_deposit_body())

        assert resp.status_code == 502
        assert resp.json() == {"error": True, "message": "Investment failed: User rejected the request"}

    @pytest.mark.asyncio
    async def test_invalid_vault_422(self):
        resp = await _request(self.app, "POST", "/api/v1/deposits", json=_deposit_body(vault_address="0x12"))

        assert resp.status_code == 422
        assert resp.json()["message"] == "Validation failed"
        self.mock_service.deposit.assert_not_awaited()


# ────────────────────────────────────────────────────────────────────────────
# Movements endpoint tests
# ────────────────────────────────────────────────────────────────────────────


class TestMovementsEndpoints:
    @pytest.fixture(autouse=True)
    def _setup(self):
        from vaultflow.api.v1.endpoints.movements import _get_movement_service

        self.app = _make_test_app()
        self.mock_service = AsyncMock()
        self.app.dependency_overrides[_get_movement_service] = lambda: self.mock_service

    @pytest.mark.asyncio
    async def test_get_movement_200(self):
        self.mock_service.get_movement.return_value = make_movement(
            details={"submission_path": "batch", "is_additional_deposit": False}
        )

        resp = await _request(self.app, "GET", f"/api/v1/movements/{MOVEMENT_ID}")

        assert resp.status_code == 200
        data = resp.json()
        assert data["id"] == str(MOVEMENT_ID)
        assert data["status"] == "pending"
        assert data["tx_hash"] == BATCH_ID
        assert data["metadata"]["submission_path"] == "batch"

    @pytest.mark.asyncio
    async def test_get_movement_404(self):
        self.mock_service.get_movement.side_effect = NotFoundException("Movement", MOVEMENT_ID)

        resp = await _request(self.app, "GET", f"/api/v1/movements/{MOVEMENT_ID}")

        assert resp.status_code == 404
        assert resp.json()["error"] is True

    @pytest.mark.asyncio
    async def test_get_movement_invalid_uuid_422(self):
        resp = await _request(self.app, "GET", "/api/v1/movements/not-a-uuid")
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_profile_movements(self):
        self.mock_service.get_movements_by_profile.return_value = [make_movement()]

        resp = await _request(self.app, "GET", f"/api/v1/profiles/{PROFILE_ID}/movements?limit=10")

        assert resp.status_code == 200
        assert len(resp.json()) == 1
        self.mock_service.get_movements_by_profile.assert_awaited_once_with(PROFILE_ID, skip=0, limit=10)

    @pytest.mark.asyncio
    async def test_investment_movements(self):
        self.mock_service.get_movements_by_investment.return_value = []

        resp = await _request(self.app, "GET", f"/api/v1/investments/{INVESTMENT_ID}/movements")

        assert resp.status_code == 200
        assert resp.json() == []

    @pytest.mark.asyncio
    async def test_record_reward_201(self):
        self.mock_service.record_reward.return_value = make_movement(
            movement_type=MovementType.REWARD,
            status=MovementStatus.CONFIRMED,
            amount=Decimal("1.25"),
            tx_hash=None,
        )

        resp = await _request(
            self.app, "POST", f"/api/v1/investments/{INVESTMENT_ID}/rewards", json={"amount": "1.25"}
        )

        assert resp.status_code == 201
        assert resp.json()["movement_type"] == "reward"
        assert resp.json()["status"] == "confirmed"

    @pytest.mark.asyncio
    async def test_record_reward_rejects_zero(self):
        resp = await _request(
            self.app, "POST", f"/api/v1/investments/{INVESTMENT_ID}/rewards", json={"amount": "0"}
        )
        assert resp.status_code == 422
        self.mock_service.record_reward.assert_not_awaited()


# ────────────────────────────────────────────────────────────────────────────
# Investments endpoint tests
# ────────────────────────────────────────────────────────────────────────────


class TestInvestmentsEndpoints:
    @pytest.fixture(autouse=True)
    def _setup(self):
        from vaultflow.api.v1.endpoints.investments import _get_investment_service

        self.app = _make_test_app()
        self.mock_service = AsyncMock()
        self.app.dependency_overrides[_get_investment_service] = lambda: self.mock_service

    @pytest.mark.asyncio
    async def test_list_investments(self):
        self.mock_service.get_investments_by_profile.return_value = [make_investment()]

        resp = await _request(self.app, "GET", f"/api/v1/profiles/{PROFILE_ID}/investments")

        assert resp.status_code == 200
        data = resp.json()
        assert data[0]["vault_address"] == VAULT
        assert data[0]["status"] == "pending"

    @pytest.mark.asyncio
    async def test_list_investments_status_filter(self):
        self.mock_service.get_investments_by_profile.return_value = []

        resp = await _request(self.app, "GET", f"/api/v1/profiles/{PROFILE_ID}/investments?status=active")

        assert resp.status_code == 200
        kwargs = self.mock_service.get_investments_by_profile.await_args.kwargs
        assert kwargs["status"].value == "active"

    @pytest.mark.asyncio
    async def test_list_investments_bad_status_422(self):
        resp = await _request(self.app, "GET", f"/api/v1/profiles/{PROFILE_ID}/investments?status=closed")
        assert resp.status_code == 422

    @pytest.mark.asyncio
    async def test_summary(self):
        from vaultflow.schemas.investment import InvestmentSummary

        self.mock_service.get_summary.return_value = InvestmentSummary(
            profile_id=PROFILE_ID,
            positions=[],
            total_invested=Decimal("0"),
            total_rewards=Decimal("0"),
            total_value=Decimal("0"),
        )

        resp = await _request(self.app, "GET", f"/api/v1/profiles/{PROFILE_ID}/investments/summary")

        assert resp.status_code == 200
        assert resp.json()["positions"] == []

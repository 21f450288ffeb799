"""
Shared pytest fixtures for unit tests.

All tests run with ``USE_SQLITE=true`` and mocked dependencies so that no
real database, wallet or RPC endpoint is needed.
"""

import os

os.environ.setdefault("USE_SQLITE", "true")

import uuid  # noqa: E402
from datetime import datetime, timezone  # noqa: E402
from decimal import Decimal  # noqa: E402
from typing import Any, Dict, List, Optional  # noqa: E402
from unittest.mock import AsyncMock, MagicMock  # noqa: E402

import pytest  # noqa: E402

from vaultflow.chain.gateway import ChainGateway, ContractCall  # noqa: E402
from vaultflow.core.cache import TTLCache  # noqa: E402
from vaultflow.models.investment import (  # noqa: E402
    Investment,
    InvestmentStatus,
    InvestmentType,
)
from vaultflow.models.movement import Movement, MovementStatus, MovementType  # noqa: E402

# ────────────────────────────────────────────────────────────────────────────
# Factory helpers
# ────────────────────────────────────────────────────────────────────────────

PROFILE_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
INVESTMENT_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")
MOVEMENT_ID = uuid.UUID("33333333-3333-3333-3333-333333333333")
PROFILE_ID_2 = uuid.UUID("44444444-4444-4444-4444-444444444444")

WALLET = "0x1111111111111111111111111111111111111111"
VAULT = "0xbeef010f9cb27031ad51e3333f9af9c6b1228183"
TOKEN = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"

BATCH_ID = "0xbatch0001"
DEPOSIT_TX = "0x" + "d" * 64
APPROVE_TX = "0x" + "a" * 64
FINAL_TX = "0x" + "f" * 64


def make_investment(
    *,
    id: uuid.UUID = INVESTMENT_ID,
    profile_id: uuid.UUID = PROFILE_ID,
    vault_address: str = VAULT,
    investment_name: str = "Steakhouse USDC",
    investment_type: InvestmentType = InvestmentType.MORPHO_VAULT,
    amount_invested: Decimal = Decimal("100.000000"),
    current_rewards: Decimal = Decimal("0"),
    apr: Optional[Decimal] = Decimal("5.25"),
    status: InvestmentStatus = InvestmentStatus.PENDING,
    created_at: Optional[datetime] = None,
) -> Investment:
    """Create an Investment domain object with sensible test defaults."""
    now = created_at or datetime.now(timezone.utc)
    return Investment(
        id=id,
        profile_id=profile_id,
        vault_address=vault_address,
        investment_name=investment_name,
        investment_type=investment_type,
        amount_invested=amount_invested,
        current_rewards=current_rewards,
        apr=apr,
        status=status,
        created_at=now,
        updated_at=now,
    )


def make_movement(
    *,
    id: uuid.UUID = MOVEMENT_ID,
    profile_id: uuid.UUID = PROFILE_ID,
    investment_id: uuid.UUID = INVESTMENT_ID,
    movement_type: MovementType = MovementType.DEPOSIT,
    amount: Decimal = Decimal("100.000000"),
    tx_hash: Optional[str] = BATCH_ID,
    status: MovementStatus = MovementStatus.PENDING,
    details: Optional[Dict[str, Any]] = None,
) -> Movement:
    """Create a Movement domain object with sensible test defaults."""
    now = datetime.now(timezone.utc)
    return Movement(
        id=id,
        profile_id=profile_id,
        investment_id=investment_id,
        movement_type=movement_type,
        amount=amount,
        tx_hash=tx_hash,
        status=status,
        details=details if details is not None else {"submission_path": "batch"},
        created_at=now,
        updated_at=now,
    )


class StubGateway(ChainGateway):
    """
    Scriptable in-memory gateway.

    Every call is appended to ``calls`` as ``(method, payload)`` so tests can
    assert on ordering, and submissions record their ``chain_id`` in
    ``chain_ids``.  Behaviour is set through the public attributes; an
    ``Exception`` instance in a result slot is raised instead of returned.
    """

    def __init__(self) -> None:
        self.calls: List[tuple] = []
        self.batch_result: Any = BATCH_ID
        self.allowance_result: Any = "0x" + "0" * 64
        self.send_results: List[Any] = [DEPOSIT_TX]
        self.receipts: Dict[str, List[Any]] = {}
        self.calls_status: List[Any] = []
        self.switch_result: Any = None
        self.chain_ids: List[int] = []

    @staticmethod
    def _resolve(value: Any) -> Any:
        if isinstance(value, Exception):
            raise value
        return value

    async def call(self, to: str, data: str) -> str:
        self.calls.append(("eth_call", {"to": to, "data": data}))
        return self._resolve(self.allowance_result)

    async def send_transaction(self, sender: str, chain_id: int, call: ContractCall) -> str:
        self.chain_ids.append(chain_id)
        self.calls.append(("eth_sendTransaction", call))
        return self._resolve(self.send_results.pop(0))

    async def send_calls(self, sender: str, chain_id: int, calls: List[ContractCall]) -> str:
        self.chain_ids.append(chain_id)
        self.calls.append(("wallet_sendCalls", list(calls)))
        return self._resolve(self.batch_result)

    async def get_calls_status(self, batch_id: str) -> Dict[str, Any]:
        self.calls.append(("wallet_getCallsStatus", batch_id))
        if not self.calls_status:
            return {"status": 100, "receipts": []}
        value = self.calls_status.pop(0) if len(self.calls_status) > 1 else self.calls_status[0]
        return self._resolve(value)

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        self.calls.append(("eth_getTransactionReceipt", tx_hash))
        queue = self.receipts.get(tx_hash)
        if not queue:
            return None
        value = queue.pop(0) if len(queue) > 1 else queue[0]
        return self._resolve(value)

    async def switch_chain(self, chain_id: int) -> None:
        self.calls.append(("wallet_switchEthereumChain", chain_id))
        self._resolve(self.switch_result)

    def methods(self) -> List[str]:
        return [method for method, _ in self.calls]


# ────────────────────────────────────────────────────────────────────────────
# Pytest fixtures
# ────────────────────────────────────────────────────────────────────────────


@pytest.fixture()
def mock_db():
    """A mocked AsyncSession that tracks add/commit/refresh/rollback calls."""
    session = AsyncMock()
    session.add = MagicMock()
    session.commit = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.execute = AsyncMock()
    session.get = AsyncMock()
    session.merge = AsyncMock()
    return session


@pytest.fixture()
def gateway():
    return StubGateway()


@pytest.fixture()
def test_cache():
    """A fresh TTL cache instance for test isolation."""
    return TTLCache(ttl=30.0, max_size=100, enabled=True)


@pytest.fixture()
def disabled_cache():
    """A disabled TTL cache: all operations are no-ops."""
    return TTLCache(ttl=30.0, max_size=100, enabled=False)


@pytest.fixture(autouse=True)
def _clear_global_cache():
    """Clear the global cache before each test to prevent cross-test pollution."""
    from vaultflow.core.cache import cache

    cache.clear()
    yield
    cache.clear()

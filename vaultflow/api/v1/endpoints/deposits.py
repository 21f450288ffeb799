"""
Deposit API endpoint.

- POST  /deposits  Submit a deposit into a vault (returns before confirmation)
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from vaultflow.chain.gateway import ChainGateway, get_chain_gateway
from vaultflow.chain.signer import SignerContext
from vaultflow.core.config import settings
from vaultflow.db.session import AsyncSessionLocal, get_db
from vaultflow.models.investment import Investment
from vaultflow.models.movement import Movement
from vaultflow.repositories.investment_repo import InvestmentRepository
from vaultflow.repositories.movement_repo import MovementRepository
from vaultflow.schemas.common import ErrorResponse, ValidationErrorResponse
from vaultflow.schemas.deposit import DepositCreate, DepositRequest, DepositResponse
from vaultflow.services.allowance import AllowanceInspector
from vaultflow.services.deposit_service import DepositService
from vaultflow.services.poller import ConfirmationPoller, poller_registry
from vaultflow.services.submission import SubmissionStrategySelector

router = APIRouter()


# ── Dependency injection ──


def _get_deposit_service(
    db: AsyncSession = Depends(get_db),
    gateway: ChainGateway = Depends(get_chain_gateway),
) -> DepositService:
    """
    Build a DepositService for the current request.

    Repositories share the request session; the poller gets the session
    factory because it keeps running after the request is finished.
    """
    selector = SubmissionStrategySelector(
        gateway=gateway,
        inspector=AllowanceInspector(gateway, settings.TOKEN_ADDRESS),
        token_address=settings.TOKEN_ADDRESS,
        approval_max_attempts=settings.APPROVAL_MAX_ATTEMPTS,
        approval_interval=settings.APPROVAL_POLL_INTERVAL_SECONDS,
    )
    poller = ConfirmationPoller(
        gateway=gateway,
        session_factory=AsyncSessionLocal,
        max_attempts=settings.POLL_MAX_ATTEMPTS,
        interval=settings.POLL_INTERVAL_SECONDS,
    )
    return DepositService(
        invest_repo=InvestmentRepository(Investment, db),
        movement_repo=MovementRepository(Movement, db),
        gateway=gateway,
        selector=selector,
        poller=poller,
        registry=poller_registry,
    )


# ── Endpoints ──


@router.post(
    "",
    response_model=DepositResponse,
    status_code=202,
    summary="Deposit into a vault",
    description=(
        "Merges the deposit into the open position for this vault (or opens a "
        "new one), submits approve + deposit through the connected wallet and "
        "returns immediately. The returned movement stays ``pending`` until "
        "the confirmation poller records the on-chain result; poll "
        "``GET /movements/{movement_id}`` to follow it."
    ),
    responses={
        409: {"model": ErrorResponse, "description": "Wallet not connected or concurrent deposit"},
        422: {
            "model": ValidationErrorResponse,
            "description": "Validation error or amount beyond token precision",
        },
        502: {"model": ErrorResponse, "description": "Wallet rejected both submission paths"},
    },
)
async def create_deposit(
    deposit: DepositRequest,
    service: DepositService = Depends(_get_deposit_service),
) -> DepositResponse:
    signer = SignerContext(address=deposit.wallet_address, chain_id=deposit.chain_id)
    intent = DepositCreate(**deposit.model_dump(exclude={"wallet_address", "chain_id"}))
    result = await service.deposit(signer, intent)
    return DepositResponse.model_validate(result)

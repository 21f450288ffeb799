"""
Investment API endpoints.

Investments are scoped under profiles:
- GET   /profiles/{profile_id}/investments          List a profile's investments
- GET   /profiles/{profile_id}/investments/summary  Per-vault totals of open positions
"""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vaultflow.db.session import get_db
from vaultflow.models.investment import Investment, InvestmentStatus
from vaultflow.models.movement import Movement
from vaultflow.repositories.investment_repo import InvestmentRepository
from vaultflow.repositories.movement_repo import MovementRepository
from vaultflow.schemas.investment import InvestmentResponse, InvestmentSummary
from vaultflow.services.investment_service import InvestmentService

router = APIRouter()


# ── Dependency injection ──


def _get_investment_service(db: AsyncSession = Depends(get_db)) -> InvestmentService:
    return InvestmentService(
        invest_repo=InvestmentRepository(Investment, db),
        movement_repo=MovementRepository(Movement, db),
    )


# ── Endpoints ──
# Full paths are declared here because the router is mounted at the API root.


@router.get(
    "/profiles/{profile_id}/investments",
    response_model=List[InvestmentResponse],
    summary="List investments for a profile",
    description=(
        "Returns the profile's investments, newest first. Filter with "
        "``status`` and paginate with ``skip`` and ``limit``."
    ),
)
async def list_investments(
    profile_id: UUID,
    status: Optional[InvestmentStatus] = Query(None, description="Only this status"),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(100, ge=1, le=1000, description="Max records to return"),
    service: InvestmentService = Depends(_get_investment_service),
) -> List[InvestmentResponse]:
    return await service.get_investments_by_profile(
        profile_id, status=status, skip=skip, limit=limit
    )


@router.get(
    "/profiles/{profile_id}/investments/summary",
    response_model=InvestmentSummary,
    summary="Portfolio summary for a profile",
    description=(
        "Per-vault invested amount, rewards and value for open positions, "
        "plus profile totals. Deposits still awaiting confirmation are counted."
    ),
)
async def get_investment_summary(
    profile_id: UUID,
    service: InvestmentService = Depends(_get_investment_service),
) -> InvestmentSummary:
    return await service.get_summary(profile_id)

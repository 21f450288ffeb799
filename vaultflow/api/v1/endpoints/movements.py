"""
Movement API endpoints.

- GET   /movements/{movement_id}                  Current status of one movement
- GET   /profiles/{profile_id}/movements          Movement history of a profile
- GET   /investments/{investment_id}/movements    Movements of one investment
- POST  /investments/{investment_id}/rewards      Record a reward payout
"""

from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from vaultflow.db.session import get_db
from vaultflow.models.investment import Investment
from vaultflow.models.movement import Movement
from vaultflow.repositories.investment_repo import InvestmentRepository
from vaultflow.repositories.movement_repo import MovementRepository
from vaultflow.schemas.common import ErrorResponse, ValidationErrorResponse
from vaultflow.schemas.movement import MovementResponse, RewardCreate
from vaultflow.services.movement_service import MovementService

router = APIRouter()


def _get_movement_service(db: AsyncSession = Depends(get_db)) -> MovementService:
    return MovementService(
        movement_repo=MovementRepository(Movement, db),
        invest_repo=InvestmentRepository(Investment, db),
    )


@router.get(
    "/movements/{movement_id}",
    response_model=MovementResponse,
    summary="Get a movement",
    description=(
        "Returns the movement as currently stored. Not cached: clients poll "
        "this endpoint to watch a deposit move from ``pending`` to "
        "``confirmed`` or ``failed``."
    ),
    responses={404: {"model": ErrorResponse, "description": "Movement not found"}},
)
async def get_movement(
    movement_id: UUID,
    service: MovementService = Depends(_get_movement_service),
) -> MovementResponse:
    return await service.get_movement(movement_id)


@router.get(
    "/profiles/{profile_id}/movements",
    response_model=List[MovementResponse],
    summary="List a profile's movements",
)
async def list_profile_movements(
    profile_id: UUID,
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=500, description="Max records to return"),
    service: MovementService = Depends(_get_movement_service),
) -> List[MovementResponse]:
    return await service.get_movements_by_profile(profile_id, skip=skip, limit=limit)


@router.get(
    "/investments/{investment_id}/movements",
    response_model=List[MovementResponse],
    summary="List an investment's movements",
    responses={404: {"model": ErrorResponse, "description": "Investment not found"}},
)
async def list_investment_movements(
    investment_id: UUID,
    service: MovementService = Depends(_get_movement_service),
) -> List[MovementResponse]:
    return await service.get_movements_by_investment(investment_id)


@router.post(
    "/investments/{investment_id}/rewards",
    response_model=MovementResponse,
    status_code=201,
    summary="Record a reward",
    description="Records yield paid to an open position as a confirmed reward movement.",
    responses={
        404: {"model": ErrorResponse, "description": "Investment not found"},
        422: {
            "model": ValidationErrorResponse,
            "description": "Validation error or investment not open",
        },
    },
)
async def record_reward(
    investment_id: UUID,
    reward: RewardCreate,
    service: MovementService = Depends(_get_movement_service),
) -> MovementResponse:
    return await service.record_reward(investment_id, reward)

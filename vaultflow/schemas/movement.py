"""
Pydantic schemas for Movement API request / response serialisation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from vaultflow.models.movement import MovementStatus, MovementType


class MovementResponse(BaseModel):
    """
    Schema returned by movement endpoints.

    ``metadata`` is read from the model's ``details`` attribute.
    """

    id: UUID
    profile_id: UUID
    investment_id: UUID
    movement_type: MovementType
    amount: Decimal
    token: str
    tx_hash: Optional[str] = None
    chain: str
    status: MovementStatus
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="details")
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class RewardCreate(BaseModel):
    """Schema for ``POST /investments/{investment_id}/rewards``."""

    amount: Decimal = Field(
        ...,
        gt=0,
        max_digits=20,
        decimal_places=6,
        description="Reward amount in token units",
        examples=["1.25"],
    )
    tx_hash: Optional[str] = Field(
        default=None,
        max_length=255,
        description="On-chain reference of the reward distribution, if any",
    )

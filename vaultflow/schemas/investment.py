"""
Pydantic schemas for Investment API responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from vaultflow.models.investment import InvestmentStatus, InvestmentType


class InvestmentResponse(BaseModel):
    """Schema returned by investment endpoints."""

    id: UUID
    profile_id: UUID
    investment_name: str
    investment_type: InvestmentType
    vault_address: str
    amount_invested: Decimal
    current_rewards: Decimal
    apr: Optional[Decimal] = None
    status: InvestmentStatus
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class VaultPosition(BaseModel):
    """One open position in the portfolio summary."""

    investment_id: UUID
    investment_name: str
    investment_type: InvestmentType
    vault_address: str
    status: InvestmentStatus
    apr: Optional[Decimal] = None
    total_invested: Decimal = Field(
        ..., description="Sum of non-failed deposit movements into this position"
    )
    current_rewards: Decimal
    total_value: Decimal = Field(..., description="total_invested + current_rewards")


class InvestmentSummary(BaseModel):
    """Per-vault totals and profile-wide totals for open positions."""

    profile_id: UUID
    positions: List[VaultPosition]
    total_invested: Decimal
    total_rewards: Decimal
    total_value: Decimal

"""
Pydantic schemas for the deposit endpoint.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from vaultflow.chain.abi import is_address
from vaultflow.core.config import settings
from vaultflow.models.investment import InvestmentType
from vaultflow.models.movement import MovementStatus
from vaultflow.services.submission import SubmissionPath


class DepositCreate(BaseModel):
    """A deposit intent: put ``amount`` of the configured token into one vault."""

    profile_id: UUID = Field(..., description="Profile the position belongs to")
    vault_address: str = Field(
        ...,
        description="ERC-4626 vault contract address",
        examples=["0xbeef010f9cb27031ad51e3333f9af9c6b1228183"],
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Deposit amount in token units (at most the token's decimals)",
        examples=["100.00"],
    )
    investment_name: str = Field(
        ..., min_length=1, max_length=255, examples=["Steakhouse USDC"]
    )
    investment_type: InvestmentType = Field(default=InvestmentType.MORPHO_VAULT)
    apr: Optional[Decimal] = Field(
        default=None,
        ge=0,
        le=999.99,
        description="APR snapshot shown to the user when depositing",
        examples=["5.25"],
    )

    @field_validator("vault_address")
    @classmethod
    def validate_vault_address(cls, v: str) -> str:
        if not is_address(v):
            raise ValueError("vault_address must be a 0x-prefixed 20-byte hex address")
        return v.lower()


class DepositRequest(DepositCreate):
    """
    Body of ``POST /deposits``.

    ``wallet_address`` and ``chain_id`` describe the connected wallet; a
    missing address is reported as "wallet not connected" rather than as a
    validation error.
    """

    wallet_address: Optional[str] = Field(
        default=None,
        description="Connected wallet that signs the deposit",
        examples=["0x1111111111111111111111111111111111111111"],
    )
    chain_id: int = Field(default=settings.CHAIN_ID, gt=0)


class DepositResponse(BaseModel):
    """Optimistic result returned as soon as the deposit is submitted."""

    investment_id: UUID
    movement_id: Optional[UUID] = Field(
        default=None,
        description="Null when the submission reached the chain but the ledger write failed",
    )
    submitted_tx_ref: str = Field(
        ..., description="Batch identifier (batch path) or transaction hash (sequential path)"
    )
    submission_path: SubmissionPath
    status: MovementStatus
    is_additional_deposit: bool

    model_config = ConfigDict(from_attributes=True)

"""
Investment domain model.

An investment is a user's open position in one vault.  Additional deposits
into the same vault extend the open row instead of creating a new one.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, List, Optional

import sqlalchemy as sa
from sqlalchemy import CheckConstraint, DateTime, Index
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from vaultflow.models.movement import Movement


class InvestmentType(str, Enum):
    """Kinds of investment product a deposit can target."""

    MORPHO_VAULT = "morpho_vault"
    SAVINGS_ACCOUNT = "savings_account"


class InvestmentStatus(str, Enum):
    """
    Investment lifecycle.

    pending → active on successful submission; active → pending when another
    deposit is merged in; pending → failed when submission fails (terminal).
    """

    PENDING = "pending"
    ACTIVE = "active"
    FAILED = "failed"


OPEN_INVESTMENT_STATUSES = (InvestmentStatus.PENDING, InvestmentStatus.ACTIVE)


def enum_column(enum_cls: type) -> sa.Enum:
    """VARCHAR-backed enum column storing the member *values* ("pending", not "PENDING")."""
    return sa.Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
        validate_strings=True,
    )


_OPEN_PREDICATE = sa.text("status IN ('pending', 'active')")


class Investment(SQLModel, table=True):
    """
    SQLModel / SQLAlchemy table definition for investments.

    - ``uq_investments_open_position`` is a *partial* unique index: at most one
      pending/active row per (profile, vault).  Failed rows fall outside the
      predicate, so a fresh deposit after a failure creates a new position.
    - Amounts are DECIMAL(20,6), the USDC base-unit granularity.
    """

    __tablename__ = "investments"  # type: ignore[assignment]

    __table_args__ = (
        Index(
            "uq_investments_open_position",
            "profile_id",
            "vault_address",
            unique=True,
            postgresql_where=_OPEN_PREDICATE,
            sqlite_where=_OPEN_PREDICATE,
        ),
        Index("ix_investments_profile_created", "profile_id", "created_at"),
        CheckConstraint("amount_invested >= 0", name="ck_investments_amount_non_negative"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    profile_id: uuid.UUID = Field(index=True)
    investment_name: str = Field(max_length=255)
    investment_type: InvestmentType = Field(
        default=InvestmentType.MORPHO_VAULT,
        sa_type=enum_column(InvestmentType),  # type: ignore[arg-type]
    )
    vault_address: str = Field(max_length=42, index=True)
    amount_invested: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=6)
    current_rewards: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=6)
    apr: Optional[Decimal] = Field(default=None, max_digits=5, decimal_places=2)
    status: InvestmentStatus = Field(
        default=InvestmentStatus.PENDING,
        sa_type=enum_column(InvestmentStatus),  # type: ignore[arg-type]
        index=True,
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_type=DateTime(timezone=True),  # type: ignore[arg-type]
    )

    movements: List["Movement"] = Relationship(back_populates="investment")

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_INVESTMENT_STATUSES

    def __repr__(self) -> str:
        return (
            f"<Investment id={self.id} profile={self.profile_id} "
            f"vault={self.vault_address} amount={self.amount_invested} "
            f"status={self.status}>"
        )

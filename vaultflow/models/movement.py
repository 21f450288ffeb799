"""
Movement domain model.

One discrete ledger event (deposit, withdrawal, reward, fee) against an
investment.  Deposit movements are written as ``pending`` right after the
on-chain submission and resolved once by the confirmation poller.
"""

import uuid
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Index
from sqlmodel import Field, Relationship, SQLModel

from vaultflow.models.investment import enum_column

if TYPE_CHECKING:
    from vaultflow.models.investment import Investment


class MovementType(str, Enum):
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    REWARD = "reward"
    FEE = "fee"


class MovementStatus(str, Enum):
    """``confirmed`` and ``failed`` are terminal: never rewritten once set."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class Movement(SQLModel, table=True):
    """
    SQLModel / SQLAlchemy table definition for investment movements.

    - ``tx_hash`` starts as the provisional reference returned by submission.
      For batched submissions that is the wallet's batch identifier; the
      poller swaps it for the real transaction hash in the same UPDATE that
      sets the terminal status.
    - ``details`` maps to the ``metadata`` column (``metadata`` is reserved on
      declarative classes).
    """

    __tablename__ = "investment_movements"  # type: ignore[assignment]

    __table_args__ = (
        Index("ix_movements_profile_created", "profile_id", "created_at"),
        CheckConstraint("amount > 0", name="ck_movements_amount_positive"),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    profile_id: uuid.UUID = Field(index=True)
    investment_id: uuid.UUID = Field(
        foreign_key="investments.id",
        index=True,
        ondelete="CASCADE",
    )
    movement_type: MovementType = Field(
        sa_type=enum_column(MovementType),  # type: ignore[arg-type]
    )
    amount: Decimal = Field(max_digits=20, decimal_places=6)
    token: str = Field(default="USDC", max_length=10)
    tx_hash: Optional[str] = Field(default=None, max_length=255, index=True)
    chain: str = Field(default="base", max_length=50)
    status: MovementStatus = Field(
        default=MovementStatus.PENDING,
        sa_type=enum_column(MovementStatus),  # type: ignore[arg-type]
        index=True,
    )
    details: Dict[str, Any] = Field(
        default_factory=dict,
        sa_column=Column("metadata", JSON, nullable=True),
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

    investment: Optional["Investment"] = Relationship(back_populates="movements")

    def __repr__(self) -> str:
        return (
            f"<Movement id={self.id} type={self.movement_type} "
            f"amount={self.amount} status={self.status} tx={self.tx_hash}>"
        )

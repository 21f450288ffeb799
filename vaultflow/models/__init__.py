"""SQLModel table models: import here so metadata is populated."""

from vaultflow.models.investment import (  # noqa: F401
    Investment,
    InvestmentStatus,
    InvestmentType,
)
from vaultflow.models.movement import Movement, MovementStatus, MovementType  # noqa: F401

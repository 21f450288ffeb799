"""
Database model registry.

Importing this module registers every ledger table with SQLModel's metadata,
which must happen before ``create_all()`` runs.
"""

from vaultflow.models.investment import Investment  # noqa: F401
from vaultflow.models.movement import Movement  # noqa: F401

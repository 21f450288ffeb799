"""
V1 API router aggregation.

All versioned endpoint routers are mounted here under a common prefix.
The top-level ``main.py`` mounts this router at ``/api/v1``.
"""

from fastapi import APIRouter

from vaultflow.api.v1.endpoints import deposits, investments, movements

api_router = APIRouter()

api_router.include_router(deposits.router, prefix="/deposits", tags=["Deposits"])

# These routers declare full paths (/profiles/..., /investments/..., /movements/...)
# so they are mounted at the root of the v1 prefix.
api_router.include_router(investments.router, tags=["Investments"])
api_router.include_router(movements.router, tags=["Movements"])

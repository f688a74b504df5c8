from fastapi import APIRouter

from app.api.v1.health import router as health_router
from app.api.v1.budgets import router as budgets_router
from app.api.v1.contracts import router as contracts_router


v1_router = APIRouter()

# ------------------------------------------------------------------
# SYSTEM / CORE
# ------------------------------------------------------------------
v1_router.include_router(health_router, tags=["health"])

# ------------------------------------------------------------------
# SSOT LIFECYCLE
# ------------------------------------------------------------------
v1_router.include_router(budgets_router, tags=["budgets"])
v1_router.include_router(contracts_router, tags=["contracts"])

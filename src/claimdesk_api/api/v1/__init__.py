from fastapi import APIRouter

from .endpoints import (
    approvals,
    health,
    observability,
)

router = APIRouter()
router.include_router(health.router, tags=["Health"])
router.include_router(approvals.router)
router.include_router(observability.router)

from fastapi import APIRouter

from skillgate.api.billing import router as billing_router
from skillgate.api.health import router as health_router
from skillgate.api.metrics import router as metrics_router
from skillgate.api.si import router as si_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(metrics_router)
api_router.include_router(si_router, prefix="/api/si")
api_router.include_router(billing_router, prefix="/api/billing")

__all__ = ["api_router"]

"""
Main API router
"""
from fastapi import APIRouter

from app.api.v1 import (
    health,
    version,
    auth,
    attendance,
    regularization,
    machines,
    holidays,
)

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(version.router, tags=["version"])
api_router.include_router(auth.router, prefix="/auth", tags=["authentication"])
# Machine management is registered before the generic attendance routes
api_router.include_router(machines.router, prefix="/attendance/machines", tags=["attendance-machines"])
api_router.include_router(regularization.router, prefix="/attendance", tags=["regularization"])
api_router.include_router(attendance.router, prefix="/attendance", tags=["attendance"])
api_router.include_router(holidays.router, prefix="/holidays", tags=["holidays"])

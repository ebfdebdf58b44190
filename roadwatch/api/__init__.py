"""API routes package."""

from fastapi import APIRouter

from roadwatch.api.routes import payments, vehicles, violations

# Main API router
api_router = APIRouter(prefix="/api/v1")

# Include route modules
api_router.include_router(vehicles.router)
api_router.include_router(violations.router)
api_router.include_router(payments.router)

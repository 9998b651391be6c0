"""API v1 router configuration."""

from fastapi import APIRouter

# Import endpoint routers
from autocontrol.api.v1.endpoints import audit, auth, organization, records, users

# Create API v1 router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(auth.router, tags=["Auth"])
api_router.include_router(organization.router, tags=["Organization"])
api_router.include_router(users.router, tags=["Users"])
api_router.include_router(records.delivery_router, prefix="/records/delivery", tags=["Delivery"])
api_router.include_router(records.storage_unit_router, prefix="/records/storage-units", tags=["Storage"])
api_router.include_router(records.storage_router, prefix="/records/storage", tags=["Storage"])
api_router.include_router(
    records.technical_sheet_router,
    prefix="/records/technical-sheets",
    tags=["Technical sheets"],
)
api_router.include_router(records.incident_router, prefix="/records/incidents", tags=["Incidents"])
api_router.include_router(audit.router, tags=["Audit"])


# Health check for API v1
@api_router.get("/health", tags=["Health"])
async def api_health() -> dict[str, str]:
    """API v1 health check."""
    return {
        "status": "healthy",
        "api_version": "v1",
    }

"""Status API routes."""

from pydantic import BaseModel
from fastapi import APIRouter

from ...app import IApplication


class ApiStatusResponse(BaseModel):
    """Response model for the API liveness check."""

    message: str
    storageStatus: str


class DbStatusResponse(BaseModel):
    """Response model for database status."""

    isConnected: bool
    database: str


def create_system_router(app: IApplication) -> APIRouter:
    """Create status router."""
    router = APIRouter(prefix="/api", tags=["system"])

    @router.get("", response_model=ApiStatusResponse)
    async def api_root() -> dict:
        """Report that the API is running."""
        return {
            "message": "WorkiT API is running",
            "storageStatus": "connected" if app.is_started else "unavailable",
        }

    @router.get("/dbstatus", response_model=DbStatusResponse)
    async def db_status() -> dict:
        """Report the message repository connection state."""
        connected = app.is_started
        return {
            "isConnected": connected,
            "database": app.repository.db_path if connected else "none",
        }

    return router

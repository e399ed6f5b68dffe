"""
API v1 Router
"""

from fastapi import APIRouter
from . import tasks

router = APIRouter()

router.include_router(tasks.router, prefix="/tasks", tags=["Tasks"])


@router.get("/", tags=["API"])
async def api_root():
    """API root: returns version and available endpoints."""
    return {
        "api": "v1",
        "version": "0.1.0",
        "endpoints": [
            "/tasks/{taskId}",
            "/tasks/{taskId}/dependencies",
            "/tasks/{taskId}/dependents",
            "/tasks/{taskId}/status",
        ],
    }

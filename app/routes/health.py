"""
Health check endpoints.
"""

from fastapi import APIRouter

from app.config import settings

router = APIRouter()


@router.get("/healthz")
async def healthz():
    """Basic health check - always returns 200 if app is running."""
    return {
        "status": "ok",
        "service": "scheduling-engine",
        "remote_solver_configured": settings.solver_endpoint() is not None,
    }

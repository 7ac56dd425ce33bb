"""Health check endpoints."""

from fastapi import APIRouter, Request

from swapgate.config import get_settings
from swapgate.settlement.factory import get_executors

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "service": "swapgate"}


@router.get("/health/detailed")
async def detailed_health(request: Request):
    """Detailed health check with configuration and settlement availability."""
    settings = get_settings()
    scheduler = getattr(request.app.state, "scheduler", None)
    return {
        "status": "healthy",
        "service": "swapgate",
        "version": "0.1.0",
        "coordinator_running": bool(scheduler and scheduler.running),
        "settlement": {
            network.value: executor.available for network, executor in get_executors().items()
        },
        "config": settings.get_safe_dict(),
    }

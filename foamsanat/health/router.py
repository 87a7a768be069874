"""Health check endpoints."""

from fastapi import APIRouter, Request

from foamsanat.config.settings import Settings


router = APIRouter(prefix="/health", tags=["health"])


def _settings(request: Request) -> Settings:
    return request.app.state.settings


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe - checks if the application is running."""
    return {"status": "alive"}


@router.get("/ready")
async def readiness(request: Request) -> dict[str, str | bool]:
    """Readiness probe - reports comment storage availability without retrying it."""
    settings = _settings(request)
    comments = getattr(request.app.state, "comments", None)
    storage_ready = comments is not None and comments.storage.status().ready
    return {
        "status": "ready",
        "comments": "ready" if storage_ready else "offline",
        "environment": settings.environment,
        "debug": settings.debug,
    }


@router.get("")
async def health(request: Request) -> dict[str, str]:
    """General health check endpoint."""
    settings = _settings(request)
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }

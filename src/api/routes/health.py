"""Health check endpoints.

Provides:
- Basic health check (GET /health)
- Detailed health check with voice pool and collaborator status (GET /health/detailed)
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from src.api.dependencies import get_runtime
from src.core.runtime import CareRuntime

router = APIRouter()


class HealthResponse(BaseModel):
    """Basic health check response."""

    status: str


class DetailedHealthResponse(BaseModel):
    """Detailed health check response."""

    status: str
    checks: dict[str, str]
    voice_pool: dict[str, int]
    active_sessions: int
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Basic health check endpoint.

    Returns:
        Simple status indicating the API is running.
    """
    return HealthResponse(status="healthy")


@router.get("/health/detailed", response_model=DetailedHealthResponse)
async def detailed_health_check(
    runtime: CareRuntime = Depends(get_runtime),
) -> DetailedHealthResponse:
    """Detailed health check including collaborator configuration.

    Collaborators are only checked for configuration, no API calls are made.
    A saturated voice pool reports "degraded" since new sessions will queue.
    """
    settings = runtime.settings
    checks = {
        "murf": "configured" if settings.voice_configured else "missing",
        "groq": "configured" if settings.groq_api_key else "missing",
        "deepgram": "configured" if settings.deepgram_api_key else "missing",
        "idle_reaper": "running" if runtime.reaper.running else "stopped",
    }

    stats = runtime.pool.stats()
    status = "healthy"
    if stats.pending_requests > 0 or checks["groq"] == "missing":
        status = "degraded"

    return DetailedHealthResponse(
        status=status,
        checks=checks,
        voice_pool=stats.to_dict(),
        active_sessions=len(runtime.orchestrator.active_sessions()),
        version="0.1.0",
    )

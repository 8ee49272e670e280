"""FastAPI dependencies shared by the care routes."""

from fastapi import HTTPException, Request

from src.core.runtime import CareRuntime


def get_runtime(request: Request) -> CareRuntime:
    """Return the runtime built in the application lifespan."""
    runtime: CareRuntime | None = getattr(request.app.state, "runtime", None)
    if runtime is None:
        raise HTTPException(status_code=503, detail="Care runtime is not running")
    return runtime

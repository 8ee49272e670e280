"""FastAPI application entry point.

CareVoice - customer care assistant with pooled streaming voice.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from src.api.routes import care, health, metrics
from src.api.websocket.care_stream import care_stream_endpoint
from src.config import Settings, get_settings
from src.core.runtime import CareRuntime, build_runtime
from src.logging_config import setup_logging


def create_app(settings: Settings | None = None, runtime: CareRuntime | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Settings to use instead of the environment
        runtime: Prebuilt runtime (tests inject fakes through this)
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler.

        Startup:
        - Initialize logging
        - Build the care runtime and start the idle reaper

        Shutdown:
        - End active care sessions
        - Close all upstream voice links
        """
        setup_logging(
            level=settings.log_level,
            enable_file=settings.is_production,
            diagnose=not settings.is_production,
        )

        app.state.runtime = runtime or build_runtime(settings)
        app.state.runtime.start()

        yield

        await app.state.runtime.shutdown()
        app.state.runtime = None

    app = FastAPI(
        title="CareVoice API",
        description="Customer care assistant with streaming voice replies",
        version="0.1.0",
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
        lifespan=lifespan,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Health check routes
    app.include_router(health.router, tags=["Health"])

    # Care session routes
    app.include_router(care.router, prefix="/api", tags=["Care"])

    # Metrics endpoint for Prometheus scraping
    app.include_router(metrics.router, tags=["Observability"])

    # WebSocket endpoint for live session events
    @app.websocket("/ws/care/{session_id}")
    async def care_ws(websocket: WebSocket, session_id: str):
        """WebSocket endpoint for a care session's event stream."""
        await care_stream_endpoint(websocket, session_id, websocket.app.state.runtime)

    return app


# Application instance
app = create_app()

"""Customer care session endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel, Field

from src.api.dependencies import get_runtime
from src.core.exceptions import (
    CareSessionBusyError,
    CareSessionConflictError,
    CareSessionNotFoundError,
)
from src.core.runtime import CareRuntime
from src.logging_config import get_logger, sanitize_for_log
from src.services.llm.protocol import ProjectContext

logger = get_logger(__name__)

router = APIRouter(prefix="/care")


class ProjectPayload(BaseModel):
    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    knowledge: list[str] = Field(default_factory=list)

    def to_context(self) -> ProjectContext:
        return ProjectContext(
            project_id=self.id,
            name=self.name,
            description=self.description,
            knowledge=tuple(self.knowledge),
        )


class StartSessionRequest(BaseModel):
    """Request body for starting a care session."""

    customer_id: str = Field(min_length=1)
    project: ProjectPayload
    language: str = "en"
    customer_info: dict[str, Any] = Field(default_factory=dict)
    session_id: str | None = None


class StartSessionResponse(BaseModel):
    session_id: str
    status: str
    voice_enabled: bool
    language: str


class MessageRequest(BaseModel):
    message: str = Field(min_length=1, max_length=4000)
    type: str = "text"


class EndSessionRequest(BaseModel):
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str | None = Field(default=None, max_length=2000)


def _not_found(e: CareSessionNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


@router.post("/sessions", response_model=StartSessionResponse, status_code=201)
async def start_session(
    request: StartSessionRequest,
    runtime: CareRuntime = Depends(get_runtime),
) -> StartSessionResponse:
    """Start a care session; voice is attached when the pool can provide it."""
    logger.info(f"Start session request: {sanitize_for_log(request.model_dump())}")
    try:
        session = await runtime.orchestrator.start_session(
            customer_id=request.customer_id,
            project=request.project.to_context(),
            language=request.language,
            customer_info=request.customer_info,
            session_id=request.session_id,
        )
    except CareSessionConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e

    return StartSessionResponse(
        session_id=session.session_id,
        status=session.status.value,
        voice_enabled=session.voice_enabled,
        language=session.language,
    )


@router.get("/sessions")
async def list_sessions(runtime: CareRuntime = Depends(get_runtime)) -> dict[str, Any]:
    sessions = runtime.orchestrator.active_sessions()
    return {"sessions": sessions, "total": len(sessions)}


@router.get("/sessions/{session_id}")
async def get_session(
    session_id: str,
    runtime: CareRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    info = runtime.orchestrator.get_session_info(session_id)
    if info is not None:
        return info
    summary = runtime.orchestrator.get_summary(session_id)
    if summary is not None:
        return {"status": "ended", **summary.to_dict()}
    raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")


@router.post("/sessions/{session_id}/messages")
async def send_message(
    session_id: str,
    request: MessageRequest,
    runtime: CareRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    """Handle one customer text message and return the delivered reply."""
    try:
        outcome = await runtime.orchestrator.handle_inbound_message(
            session_id, request.message, message_type=request.type
        )
    except CareSessionNotFoundError as e:
        raise _not_found(e) from e
    except CareSessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return outcome.to_dict()


@router.post("/sessions/{session_id}/voice")
async def send_voice_message(
    session_id: str,
    audio: UploadFile = File(...),
    mimetype: str = Form("audio/webm"),
    runtime: CareRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    """Handle a recorded voice message (transcribed, then answered)."""
    audio_data = await audio.read()
    try:
        outcome = await runtime.orchestrator.handle_voice_message(
            session_id, audio_data, mimetype=audio.content_type or mimetype
        )
    except CareSessionNotFoundError as e:
        raise _not_found(e) from e
    except CareSessionBusyError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return outcome.to_dict()


@router.post("/sessions/{session_id}/end")
async def end_session(
    session_id: str,
    request: EndSessionRequest | None = None,
    runtime: CareRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    """End a session. Repeating the call returns the same summary."""
    request = request or EndSessionRequest()
    try:
        summary = await runtime.orchestrator.end_session(
            session_id, rating=request.rating, feedback=request.feedback
        )
    except CareSessionNotFoundError as e:
        raise _not_found(e) from e
    return summary.to_dict()


@router.get("/voice/stats")
async def voice_stats(runtime: CareRuntime = Depends(get_runtime)) -> dict[str, Any]:
    return runtime.orchestrator.stats()


@router.get("/voice/connections/{session_id}")
async def voice_connection(
    session_id: str,
    runtime: CareRuntime = Depends(get_runtime),
) -> dict[str, Any]:
    info = runtime.pool.connection_info(session_id)
    if info is None:
        raise HTTPException(status_code=404, detail=f"No voice link for session: {session_id}")
    return info

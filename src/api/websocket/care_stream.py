"""WebSocket handler for a care session's live event stream.

Protocol:
- Server sends JSON {"event": <name>, "data": {...}} for every session event
  (care_message, care_response, care_audio_chunk with base64 audio, ...)
- Client sends JSON events:
    {"event": "message", "text": "..."}
    {"event": "voice", "audio": "<base64>", "mimetype": "audio/webm"}
    {"event": "end", "rating": 5, "feedback": "..."}
"""

from __future__ import annotations

import asyncio
import base64
import binascii
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from src.core.broadcaster import Subscription
from src.core.care_orchestrator import SESSION_ENDED_EVENT
from src.core.exceptions import CareSessionError
from src.core.runtime import CareRuntime
from src.logging_config import get_logger
from src.services.tts.murf_stream import ERROR_EVENT, encode_audio_for_json

logger: Any = get_logger(__name__)

# Close code for an unknown session
SESSION_NOT_FOUND_CLOSE = 4404


def to_wire_payload(payload: dict) -> dict:
    """JSON-safe copy of an event payload (binary audio becomes base64)."""
    return {
        key: encode_audio_for_json(value) if isinstance(value, bytes | bytearray) else value
        for key, value in payload.items()
    }


async def _forward_events(websocket: WebSocket, subscription: Subscription) -> None:
    async for event in subscription:
        await websocket.send_json({"event": event.event, "data": to_wire_payload(event.payload)})
        if event.event == SESSION_ENDED_EVENT:
            return


async def _send_error(websocket: WebSocket, session_id: str, message: str) -> None:
    await websocket.send_json(
        {"event": ERROR_EVENT, "data": {"sessionId": session_id, "error": message}}
    )


async def _receive_events(websocket: WebSocket, session_id: str, runtime: CareRuntime) -> None:
    orchestrator = runtime.orchestrator
    while True:
        try:
            message = await websocket.receive_json()
        except WebSocketDisconnect:
            logger.info(f"Care WebSocket disconnected for session {session_id}")
            return
        except ValueError:
            await _send_error(websocket, session_id, "Invalid JSON")
            continue

        event = message.get("event", "") if isinstance(message, dict) else ""
        try:
            if event == "message":
                await orchestrator.handle_inbound_message(
                    session_id, str(message.get("text", "")), message_type="text"
                )
            elif event == "voice":
                audio = base64.b64decode(message.get("audio", ""), validate=True)
                await orchestrator.handle_voice_message(
                    session_id, audio, mimetype=message.get("mimetype", "audio/webm")
                )
            elif event == "end":
                await orchestrator.end_session(
                    session_id,
                    rating=message.get("rating"),
                    feedback=message.get("feedback"),
                )
            else:
                await _send_error(websocket, session_id, f"Unknown event: {event or '<missing>'}")
        except CareSessionError as e:
            await _send_error(websocket, session_id, str(e))
        except (ValueError, binascii.Error) as e:
            await _send_error(websocket, session_id, f"Invalid {event} event: {e}")


async def care_stream_endpoint(websocket: WebSocket, session_id: str, runtime: CareRuntime) -> None:
    """Attach a client to one care session until it disconnects or the session ends."""
    await websocket.accept()

    orchestrator = runtime.orchestrator
    if orchestrator.get_session(session_id) is None:
        logger.warning(f"Care WebSocket for unknown session {session_id}")
        await websocket.close(code=SESSION_NOT_FOUND_CLOSE)
        return

    logger.info(f"Care WebSocket connected for session {session_id}")
    async with runtime.broadcaster.subscribe(session_id) as subscription:
        forward = asyncio.create_task(_forward_events(websocket, subscription))
        receive = asyncio.create_task(_receive_events(websocket, session_id, runtime))

        done, pending = await asyncio.wait({forward, receive}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        for task in done:
            error = task.exception()
            if error is not None:
                logger.error(f"Care WebSocket for session {session_id} failed: {error!r}")

    if forward in done and websocket.application_state is WebSocketState.CONNECTED:
        await websocket.close()

"""Demultiplexing of inbound upstream frames.

The upstream sends either JSON text frames (`{"audio": <base64>,
"isFinalAudio": bool}` or `{"error": <message>}`) or raw binary audio.
Both framings are seen in production, so both paths are kept.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any

from src.logging_config import get_logger
from src.services.tts.protocol import AudioChunk, VoiceError

logger: Any = get_logger(__name__)


def decode_frame(session_id: str, data: str | bytes) -> AudioChunk | VoiceError | None:
    """Decode one inbound frame.

    Returns:
        AudioChunk for audio (JSON base64 or raw binary), VoiceError for an
        in-band error, or None for control frames that carry neither
        (acknowledgements, status updates).
    """
    message = _parse_json(data)

    if message is None:
        # Not structured data: the payload itself is audio
        raw = data if isinstance(data, bytes) else data.encode("utf-8")
        if not raw:
            return None
        return AudioChunk(session_id=session_id, audio_bytes=raw, is_final=False)

    if not isinstance(message, dict):
        logger.debug(f"Ignoring non-object JSON frame for session {session_id}")
        return None

    if message.get("audio"):
        try:
            audio_bytes = base64.b64decode(message["audio"], validate=True)
        except (binascii.Error, TypeError, ValueError) as e:
            logger.warning(f"Undecodable audio payload for session {session_id}: {e}")
            return VoiceError(session_id=session_id, message="Malformed audio payload")
        return AudioChunk(
            session_id=session_id,
            audio_bytes=audio_bytes,
            is_final=bool(message.get("isFinalAudio", False)),
        )

    if message.get("error"):
        return VoiceError(session_id=session_id, message=str(message["error"]))

    return None


def _parse_json(data: str | bytes) -> Any | None:
    """Attempt to read a frame as JSON; None means "treat as binary"."""
    if isinstance(data, bytes):
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError:
            return None
    else:
        text = data

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return None

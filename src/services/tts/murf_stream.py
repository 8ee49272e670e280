"""Murf streaming TTS link over a WebSocket.

One VoiceLink owns one upstream connection for exactly one care session:
it sends the voice configuration, submits utterances, and turns inbound
frames into broadcast events for that session.
"""

from __future__ import annotations

import asyncio
import base64
import json
import time
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any
from urllib.parse import urlencode

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from src.config import Settings, get_settings
from src.logging_config import get_logger, redact_url
from src.services.tts.exceptions import (
    TTSConfigurationError,
    TTSConnectionError,
    TTSNotOpenError,
    TTSSendError,
)
from src.services.tts.frames import decode_frame
from src.services.tts.protocol import (
    AudioChunk,
    LinkClosed,
    LinkEvent,
    LinkState,
    SessionBroadcaster,
    VoiceError,
    VoiceSelection,
    VoiceTransport,
)

logger: Any = get_logger(__name__)

# Broadcast event names consumed by care listeners
AUDIO_CHUNK_EVENT = "care_audio_chunk"
ERROR_EVENT = "care_error"
LINK_CLOSED_EVENT = "care_voice_closed"

TransportConnect = Callable[..., Awaitable[VoiceTransport]]
LinkClosedCallback = Callable[["VoiceLink"], Awaitable[None]]


class VoiceLink:
    """A single upstream streaming voice connection bound to one session."""

    def __init__(
        self,
        session_id: str,
        language: str,
        voice: VoiceSelection,
        transport: VoiceTransport,
        broadcaster: SessionBroadcaster,
        on_closed: LinkClosedCallback | None = None,
    ) -> None:
        self.session_id = session_id
        self.language = language
        self.voice = voice
        self.created_at = datetime.now(UTC)
        self.last_used = self.created_at
        self.state = LinkState.OPENING
        self.frames_received = 0

        self._transport = transport
        self._broadcaster = broadcaster
        self._on_closed = on_closed
        self._reader: asyncio.Task | None = None

    @property
    def is_open(self) -> bool:
        return self.state is LinkState.OPEN

    async def configure(self) -> None:
        """Send the voice configuration and start reading frames."""
        await self._transport.send(json.dumps(self.voice.to_config_message()))
        self.state = LinkState.OPEN
        self._reader = asyncio.create_task(
            self._read_frames(), name=f"voice-link-reader-{self.session_id}"
        )

    async def send_text(self, text: str) -> None:
        """Submit one utterance for synthesis.

        Raises:
            ValueError: If text is empty or blank
            TTSNotOpenError: If the link is not open
            TTSSendError: If the transport rejects the message
        """
        if not text or not text.strip():
            raise ValueError("Text is required for TTS conversion")
        if not self.is_open:
            raise TTSNotOpenError(f"Voice link for session {self.session_id} is {self.state.value}")

        message = {"text": text.strip(), "end": True}
        try:
            await self._transport.send(json.dumps(message))
        except Exception as e:
            logger.warning(f"Send failed on voice link {self.session_id}: {e}")
            await self._mark_closed(f"send failed: {e}", notify_listeners=False)
            raise TTSSendError(f"Failed to send text for session {self.session_id}") from e

        self.last_used = datetime.now(UTC)
        logger.debug(f"Sent {len(message['text'])} chars for synthesis in {self.session_id}")

    async def close(self) -> None:
        """Close the link. Safe to call more than once."""
        await self._mark_closed("closed locally", notify_listeners=False)

    async def _read_frames(self) -> None:
        reason = "upstream closed"
        try:
            async for data in self._transport:
                self.frames_received += 1
                event = decode_frame(self.session_id, data)
                if event is not None:
                    await self._dispatch(event)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            reason = "upstream closed with error"
            logger.info(f"Voice link {self.session_id} closed by upstream: {e}")
        except Exception as e:
            reason = f"transport error: {type(e).__name__}"
            logger.error(f"Voice link {self.session_id} transport error: {e}")
        await self._mark_closed(reason, notify_listeners=True)

    async def _dispatch(self, event: LinkEvent) -> None:
        """Translate a link event into a broadcast for this session."""
        if isinstance(event, AudioChunk):
            await self._broadcaster.publish(
                self.session_id,
                AUDIO_CHUNK_EVENT,
                {
                    "sessionId": self.session_id,
                    "audioChunk": event.audio_bytes,
                    "isFinal": event.is_final,
                },
            )
        elif isinstance(event, VoiceError):
            logger.error(f"TTS API error for session {self.session_id}: {event.message}")
            await self._broadcaster.publish(
                self.session_id,
                ERROR_EVENT,
                {"sessionId": self.session_id, "error": event.message},
            )
        elif isinstance(event, LinkClosed):
            await self._broadcaster.publish(
                self.session_id,
                LINK_CLOSED_EVENT,
                {"sessionId": self.session_id, "reason": event.reason},
            )

    async def _mark_closed(self, reason: str, *, notify_listeners: bool) -> None:
        if self.state is LinkState.CLOSED:
            return
        self.state = LinkState.CLOSED

        reader = self._reader
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()

        try:
            await self._transport.close()
        except Exception as e:
            logger.debug(f"Ignoring close error on voice link {self.session_id}: {e}")

        logger.info(f"Voice link closed for session {self.session_id}: {reason}")

        if notify_listeners:
            await self._dispatch(LinkClosed(session_id=self.session_id, reason=reason))

        if self._on_closed is not None:
            await self._on_closed(self)


class MurfStreamConnector:
    """Opens configured VoiceLinks against the Murf streaming endpoint."""

    def __init__(
        self,
        broadcaster: SessionBroadcaster,
        settings: Settings | None = None,
        connect: TransportConnect | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._broadcaster = broadcaster
        self._connect = connect or websockets.connect

    @property
    def is_configured(self) -> bool:
        return self._settings.voice_configured

    def build_url(self) -> str:
        """Build the streaming endpoint URL with audio format parameters."""
        if not self._settings.murf_api_key:
            raise TTSConfigurationError("MURF_API_KEY not configured")
        params = {
            "api-key": self._settings.murf_api_key.get_secret_value(),
            "sample_rate": self._settings.murf_sample_rate,
            "channel_type": self._settings.murf_channel_type,
            "format": self._settings.murf_audio_format,
        }
        return f"{self._settings.murf_ws_url}?{urlencode(params)}"

    async def open(
        self,
        session_id: str,
        language: str,
        voice: VoiceSelection,
        on_closed: LinkClosedCallback | None = None,
    ) -> VoiceLink:
        """Open and configure one link; a single attempt with a hard timeout.

        `on_closed` is attached before the link starts reading, so an
        immediate upstream close is never missed.

        Raises:
            TTSConfigurationError: If the upstream is not configured
            TTSConnectionError: If the handshake or configuration fails or times out
        """
        url = self.build_url()
        timeout = self._settings.tts_connect_timeout_seconds
        start_time = time.perf_counter()

        try:
            transport = await asyncio.wait_for(
                self._connect(url, max_size=None), timeout=timeout
            )
        except TimeoutError as e:
            raise TTSConnectionError(
                f"WebSocket connection timeout after {timeout:.1f}s"
            ) from e
        except (InvalidHandshake, InvalidURI, OSError) as e:
            logger.warning(f"Handshake with {redact_url(url)} failed: {e}")
            raise TTSConnectionError(f"WebSocket handshake failed: {e}") from e

        link = VoiceLink(
            session_id=session_id,
            language=language,
            voice=voice,
            transport=transport,
            broadcaster=self._broadcaster,
            on_closed=on_closed,
        )

        try:
            await asyncio.wait_for(link.configure(), timeout=timeout)
        except (TimeoutError, ConnectionClosed, OSError) as e:
            await link.close()
            raise TTSConnectionError(f"Voice configuration failed: {e!r}") from e
        except BaseException:
            await link.close()
            raise

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(
            f"Voice link opened for session {session_id} "
            f"(voice: {voice.voice_id}, {elapsed_ms:.0f}ms)"
        )
        return link


def encode_audio_for_json(audio_bytes: bytes) -> str:
    """Base64 text form of an audio chunk for JSON listeners."""
    return base64.b64encode(audio_bytes).decode("ascii")

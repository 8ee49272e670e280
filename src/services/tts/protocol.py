"""Streaming TTS protocol and data types."""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol


class LinkState(str, Enum):
    """Lifecycle of one upstream voice link."""

    OPENING = "opening"
    OPEN = "open"
    CLOSED = "closed"


@dataclass(frozen=True, slots=True)
class VoiceSelection:
    """Voice parameters sent to the upstream in the initial config message."""

    voice_id: str
    style: str = "Conversational"
    rate: int = 0
    pitch: int = 0
    variation: int = 1

    def to_config_message(self) -> dict:
        """Build the upstream voice configuration payload."""
        return {
            "voice_config": {
                "voiceId": self.voice_id,
                "style": self.style,
                "rate": self.rate,
                "pitch": self.pitch,
                "variation": self.variation,
            }
        }


@dataclass(frozen=True, slots=True)
class AudioChunk:
    """A chunk of synthesized audio received from the upstream.

    Audio is passed through undecoded (MP3/WAV as configured upstream).
    """

    session_id: str
    audio_bytes: bytes
    is_final: bool = False
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class VoiceError:
    """An error reported in-band by the upstream."""

    session_id: str
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class LinkClosed:
    """The upstream connection went away without a local close."""

    session_id: str
    reason: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


LinkEvent = AudioChunk | VoiceError | LinkClosed


class VoiceTransport(Protocol):
    """The subset of a websocket client connection used by a voice link."""

    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


class SessionBroadcaster(Protocol):
    """Fan-out sink for per-session events.

    Delivery is best-effort. Events for one session must reach each listener
    in publish order, and publishing to a session nobody listens to is a no-op.
    """

    async def publish(self, session_id: str, event: str, payload: dict) -> None: ...

"""STT (Speech-to-Text) service protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol


@dataclass
class TranscriptMetadata:
    """Metadata collected for one transcription."""

    model: str = ""
    confidence: float = 0.0
    detected_languages: list[str] = field(default_factory=list)
    latency_ms: float | None = None


class Transcriber(Protocol):
    """Protocol for transcribing one complete voice message."""

    async def transcribe(
        self,
        audio_data: bytes,
        *,
        language: str = "en",
        mimetype: str = "audio/webm",
    ) -> tuple[str, TranscriptMetadata]:
        """Transcribe a recorded voice message.

        Raises:
            TranscriptionEmptyError: If no speech was recognized
            STTServiceError: On any other failure
        """
        ...

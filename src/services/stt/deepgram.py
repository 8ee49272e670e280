"""Deepgram transcription of recorded customer voice messages."""

from __future__ import annotations

import asyncio
import time
from typing import TYPE_CHECKING, Any

from src.config import Settings, get_settings
from src.logging_config import get_logger
from src.services.stt.exceptions import STTServiceError, TranscriptionEmptyError
from src.services.stt.protocol import TranscriptMetadata

if TYPE_CHECKING:
    from deepgram import DeepgramClient

logger: Any = get_logger(__name__)

DEEPGRAM_MODEL = "nova-2"

# Care language codes -> Deepgram language codes
LANGUAGE_CODES = {
    "en": "en-US",
    "hi": "hi",
    "bn": "bn",
    "ta": "ta",
    "es": "es",
    "fr": "fr",
    "de": "de",
    "it": "it",
    "nl": "nl",
    "pt": "pt-BR",
    "zh": "zh-CN",
    "ja": "ja",
    "ko": "ko",
}


def map_language_code(language: str) -> str:
    """Map a care language code to the Deepgram language parameter."""
    return LANGUAGE_CODES.get(language.split("-")[0].lower(), "en-US")


class DeepgramTranscriber:
    """Transcribes complete voice messages with Deepgram's pre-recorded API."""

    def __init__(
        self,
        settings: Settings | None = None,
        model: str = DEEPGRAM_MODEL,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model
        self._client: DeepgramClient | None = None

    @property
    def client(self) -> DeepgramClient:
        """Lazy initialization of Deepgram client."""
        if self._client is None:
            if not self._settings.deepgram_api_key:
                raise STTServiceError("Deepgram API key is not configured")
            from deepgram import DeepgramClient

            self._client = DeepgramClient(
                api_key=self._settings.deepgram_api_key.get_secret_value(),
            )
        return self._client

    async def transcribe(
        self,
        audio_data: bytes,
        *,
        language: str = "en",
        mimetype: str = "audio/webm",
    ) -> tuple[str, TranscriptMetadata]:
        """Transcribe a recorded voice message.

        Raises:
            TranscriptionEmptyError: If the audio is empty or no speech was found
            STTServiceError: If the Deepgram request fails
        """
        if not audio_data:
            raise TranscriptionEmptyError("Voice message contained no audio")

        from deepgram import PrerecordedOptions

        options = PrerecordedOptions(
            model=self._model,
            language=map_language_code(language),
            smart_format=True,
            punctuate=True,
        )

        start_time = time.perf_counter()
        try:
            response = await asyncio.to_thread(
                self.client.listen.prerecorded.v("1").transcribe_file,
                {"buffer": audio_data, "mimetype": mimetype},
                options,
            )
        except STTServiceError:
            raise
        except Exception as e:
            logger.error(f"Deepgram transcription failed: {e}")
            raise STTServiceError(f"Deepgram transcription failed: {e}") from e

        metadata = TranscriptMetadata(
            model=self._model,
            latency_ms=(time.perf_counter() - start_time) * 1000,
        )

        transcript = ""
        results = response.results
        channels = results.channels if results else []
        if channels and channels[0].alternatives:
            alternative = channels[0].alternatives[0]
            transcript = (alternative.transcript or "").strip()
            metadata.confidence = alternative.confidence or 0.0
            detected = getattr(channels[0], "detected_language", None)
            if detected:
                metadata.detected_languages.append(detected)

        if not transcript:
            raise TranscriptionEmptyError("No speech recognized in voice message")

        logger.debug(f"Transcribed voice message in {metadata.latency_ms:.0f}ms")
        return transcript, metadata

    async def close(self) -> None:
        """Close the Deepgram client."""
        self._client = None

    async def health_check(self) -> bool:
        """Whether an API key is configured."""
        return bool(self._settings.deepgram_api_key)

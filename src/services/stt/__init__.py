"""Speech-to-Text services (Deepgram)."""

from src.services.stt.deepgram import DeepgramTranscriber, map_language_code
from src.services.stt.exceptions import STTServiceError, TranscriptionEmptyError
from src.services.stt.protocol import Transcriber, TranscriptMetadata

__all__ = [
    "DeepgramTranscriber",
    "Transcriber",
    "TranscriptMetadata",
    "map_language_code",
    "STTServiceError",
    "TranscriptionEmptyError",
]

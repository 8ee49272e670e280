"""Custom exceptions for STT services."""


class STTServiceError(Exception):
    """Base exception for STT service errors."""

    pass


class TranscriptionEmptyError(STTServiceError):
    """Raised when a voice message contains no recognizable speech."""

    pass

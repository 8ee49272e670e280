"""Custom exceptions for streaming TTS services."""


class TTSServiceError(Exception):
    """Base exception for TTS service errors."""

    pass


class TTSConnectionError(TTSServiceError):
    """Raised when an upstream voice link cannot be opened or configured."""

    def __init__(self, message: str, attempts: int = 0) -> None:
        super().__init__(message)
        self.attempts = attempts


class TTSConfigurationError(TTSConnectionError):
    """Raised when the upstream cannot be used at all (e.g. missing API key).

    Never retried: another attempt cannot succeed.
    """

    pass


class TTSQueueTimeoutError(TTSServiceError):
    """Raised when a queued link request is not served before its deadline."""

    def __init__(self, session_id: str, timeout_seconds: float) -> None:
        super().__init__(
            f"Voice link request for session {session_id} timed out "
            f"after {timeout_seconds:.1f}s in queue"
        )
        self.session_id = session_id
        self.timeout_seconds = timeout_seconds


class TTSQueueCancelledError(TTSServiceError):
    """Raised when a queued link request is withdrawn before being served."""

    pass


class TTSSendError(TTSServiceError):
    """Raised when text cannot be submitted on an open link."""

    pass


class TTSNotOpenError(TTSServiceError):
    """Raised when text is submitted for a session without an open link."""

    pass


class VoicePoolInvariantError(RuntimeError):
    """Raised when pool bookkeeping is inconsistent.

    A programming error; not a TTSServiceError, so callers never degrade on it.
    """

    pass

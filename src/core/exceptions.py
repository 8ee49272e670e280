"""Exceptions raised by the care session layer."""


class CareSessionError(Exception):
    """Base exception for care session errors."""

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(message)
        self.session_id = session_id


class CareSessionNotFoundError(CareSessionError):
    """Raised when a session id is not active (and was never ended here)."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Session not found: {session_id}")


class CareSessionConflictError(CareSessionError):
    """Raised when a caller-supplied session id is already active."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Session already active: {session_id}")


class CareSessionBusyError(CareSessionError):
    """Raised when a turn arrives while the previous turn is still in flight."""

    def __init__(self, session_id: str) -> None:
        super().__init__(session_id, f"Session {session_id} is still handling a message")


class CareSessionNotReadyError(CareSessionBusyError):
    """Raised when a turn arrives before the session finished starting."""

    def __init__(self, session_id: str) -> None:
        CareSessionError.__init__(self, session_id, f"Session {session_id} is still starting")

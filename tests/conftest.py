"""Shared pytest fixtures for CareVoice tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from src.config import Settings
from src.services.llm.exceptions import LLMConnectionError
from src.services.llm.protocol import ProjectContext, ReplyContext, ReplyMetadata
from src.services.stt.protocol import TranscriptMetadata

_HANGUP = object()


def build_settings(**overrides) -> Settings:
    """Create a Settings object with safe, fast test defaults."""
    base = {
        "murf_api_key": "test-murf-key",
        "groq_api_key": "test-groq-key",
        "deepgram_api_key": "test-deepgram-key",
        "tts_max_connections": 2,
        "tts_queue_timeout_seconds": 5.0,
        "tts_connect_timeout_seconds": 1.0,
        "tts_connect_retry_attempts": 3,
        "tts_connect_retry_delay_seconds": 0.01,
    }
    base.update(overrides)
    return Settings(**base)


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    """Return a factory to build Settings with overrides."""
    return build_settings


@pytest.fixture
def settings(settings_factory: Callable[..., Settings]) -> Settings:
    """Default Settings fixture."""
    return settings_factory()


@pytest.fixture
def project() -> ProjectContext:
    return ProjectContext(
        project_id="proj_acme",
        name="Acme Cloud",
        description="Managed hosting for small businesses",
    )


# =============================================================================
# Upstream Voice Fakes
# =============================================================================


class FakeTransport:
    """In-memory stand-in for an upstream WebSocket connection."""

    def __init__(self) -> None:
        self.sent: list[str] = []
        self.closed = False
        self.fail_send = False
        self._inbound: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.fail_send or self.closed:
            raise ConnectionError("transport closed")
        self.sent.append(message)

    async def close(self) -> None:
        self.closed = True
        self._inbound.put_nowait(_HANGUP)

    def feed(self, data: str | bytes) -> None:
        """Deliver an inbound frame."""
        self._inbound.put_nowait(data)

    def hang_up(self) -> None:
        """Simulate the upstream closing the connection."""
        self._inbound.put_nowait(_HANGUP)

    def break_with(self, error: BaseException) -> None:
        """Simulate a transport error on the read side."""
        self._inbound.put_nowait(error)

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        while True:
            item = await self._inbound.get()
            if item is _HANGUP:
                return
            if isinstance(item, BaseException):
                raise item
            yield item


class FakeConnect:
    """Replaces websockets.connect; hands out FakeTransports."""

    def __init__(self, failures: int = 0, delay: float = 0.0) -> None:
        self.failures = failures
        self.delay = delay
        self.calls: list[str] = []
        self.transports: list[FakeTransport] = []

    async def __call__(self, url: str, **kwargs) -> FakeTransport:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failures > 0:
            self.failures -= 1
            raise OSError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport


class RecordingBroadcaster:
    """Collects published events in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, str, dict]] = []

    async def publish(self, session_id: str, event: str, payload: dict) -> None:
        self.events.append((session_id, event, payload))

    def named(self, event: str, session_id: str | None = None) -> list[dict]:
        return [
            payload
            for sid, name, payload in self.events
            if name == event and (session_id is None or sid == session_id)
        ]


@pytest.fixture
def fake_connect() -> FakeConnect:
    return FakeConnect()


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


# =============================================================================
# Collaborator Fakes
# =============================================================================


class FakeReplyService:
    """Reply generator that answers from a script."""

    def __init__(self, reply: str = "Happy to help with that.", fail: bool = False) -> None:
        self.reply = reply
        self.fail = fail
        self.calls: list[tuple[str, ReplyContext]] = []
        self.closed = False
        self.gate: asyncio.Event | None = None

    async def generate_reply(self, text: str, context: ReplyContext):
        self.calls.append((text, context))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise LLMConnectionError("Failed to connect to Groq API")
        return self.reply, ReplyMetadata(model="fake")

    async def close(self) -> None:
        self.closed = True


class FakeTranscriber:
    """Transcriber returning a fixed transcript or raising a fixed error."""

    def __init__(self, transcript: str = "", error: Exception | None = None) -> None:
        self.transcript = transcript
        self.error = error
        self.calls: list[dict] = []

    async def transcribe(self, audio_data: bytes, *, language: str = "en", mimetype: str = "audio/webm"):
        self.calls.append({"audio": audio_data, "language": language, "mimetype": mimetype})
        if self.error is not None:
            raise self.error
        return self.transcript, TranscriptMetadata(model="fake")


@pytest.fixture
def reply_service() -> FakeReplyService:
    return FakeReplyService()


@pytest.fixture
def make_connect() -> type[FakeConnect]:
    """FakeConnect class, for tests that need failures or delays."""
    return FakeConnect


@pytest.fixture
def make_transcriber() -> type[FakeTranscriber]:
    return FakeTranscriber


@pytest.fixture
def make_transport() -> type[FakeTransport]:
    return FakeTransport


# =============================================================================
# API Fixtures
# =============================================================================


@pytest.fixture
def api_runtime(settings):
    """Runtime wired with in-memory collaborators."""
    from src.core.runtime import build_runtime

    return build_runtime(
        settings,
        reply_service=FakeReplyService(),
        transcriber=FakeTranscriber(transcript="Where is my invoice?"),
        connect=FakeConnect(),
    )


@pytest.fixture
def test_client(settings, api_runtime):
    """TestClient running the app lifespan around the fake runtime."""
    from fastapi.testclient import TestClient

    from src.main import create_app

    app = create_app(settings=settings, runtime=api_runtime)
    with TestClient(app) as client:
        yield client

"""Tests for the Murf streaming voice link and connector."""

from __future__ import annotations

import asyncio
import json
from urllib.parse import parse_qs, urlparse

import pytest

from src.logging_config import redact_url
from src.services.tts.exceptions import (
    TTSConfigurationError,
    TTSConnectionError,
    TTSNotOpenError,
    TTSSendError,
)
from src.services.tts.murf_stream import (
    AUDIO_CHUNK_EVENT,
    ERROR_EVENT,
    LINK_CLOSED_EVENT,
    MurfStreamConnector,
    VoiceLink,
    encode_audio_for_json,
)
from src.services.tts.protocol import LinkState, VoiceSelection


@pytest.fixture
def voice() -> VoiceSelection:
    return VoiceSelection(voice_id="en-US-natalie")


async def _open_link(make_transport, broadcaster, voice, on_closed=None):
    transport = make_transport()
    link = VoiceLink("s1", "en", voice, transport, broadcaster, on_closed=on_closed)
    await link.configure()
    return link, transport


class TestVoiceLink:
    @pytest.mark.asyncio
    async def test_configure_sends_voice_config(self, make_transport, broadcaster, voice):
        link, transport = await _open_link(make_transport, broadcaster, voice)

        assert link.state is LinkState.OPEN
        assert json.loads(transport.sent[0]) == {
            "voice_config": {
                "voiceId": "en-US-natalie",
                "style": "Conversational",
                "rate": 0,
                "pitch": 0,
                "variation": 1,
            }
        }
        await link.close()

    @pytest.mark.asyncio
    async def test_audio_frames_are_published_in_order(self, make_transport, broadcaster, voice):
        link, transport = await _open_link(make_transport, broadcaster, voice)

        transport.feed('{"audio":"QUJD","isFinalAudio":false}')
        transport.feed(b"\xff\xfb\x90")
        transport.feed('{"audio":"REVG","isFinalAudio":true}')
        await asyncio.sleep(0.01)

        chunks = broadcaster.named(AUDIO_CHUNK_EVENT, "s1")
        assert [c["audioChunk"] for c in chunks] == [b"ABC", b"\xff\xfb\x90", b"DEF"]
        assert [c["isFinal"] for c in chunks] == [False, False, True]
        assert link.frames_received == 3
        await link.close()

    @pytest.mark.asyncio
    async def test_error_frame_publishes_only_error(self, make_transport, broadcaster, voice):
        link, transport = await _open_link(make_transport, broadcaster, voice)

        transport.feed('{"error":"rate limit"}')
        await asyncio.sleep(0.01)

        assert broadcaster.named(ERROR_EVENT) == [{"sessionId": "s1", "error": "rate limit"}]
        assert broadcaster.named(AUDIO_CHUNK_EVENT) == []
        assert link.is_open
        await link.close()

    @pytest.mark.asyncio
    async def test_send_text_marks_end_of_utterance(self, make_transport, broadcaster, voice):
        link, transport = await _open_link(make_transport, broadcaster, voice)
        before = link.last_used

        await link.send_text("  Hello there  ")

        assert json.loads(transport.sent[-1]) == {"text": "Hello there", "end": True}
        assert link.last_used >= before
        await link.close()

    @pytest.mark.asyncio
    async def test_blank_text_rejected(self, make_transport, broadcaster, voice):
        link, _ = await _open_link(make_transport, broadcaster, voice)
        with pytest.raises(ValueError):
            await link.send_text("   ")
        await link.close()

    @pytest.mark.asyncio
    async def test_send_on_closed_link(self, make_transport, broadcaster, voice):
        link, _ = await _open_link(make_transport, broadcaster, voice)
        await link.close()

        with pytest.raises(TTSNotOpenError):
            await link.send_text("hello")

    @pytest.mark.asyncio
    async def test_send_failure_closes_link(self, make_transport, broadcaster, voice):
        closed = []

        async def on_closed(link):
            closed.append(link)

        link, transport = await _open_link(make_transport, broadcaster, voice, on_closed)
        transport.fail_send = True

        with pytest.raises(TTSSendError):
            await link.send_text("hello")

        assert link.state is LinkState.CLOSED
        assert closed == [link]

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, make_transport, broadcaster, voice):
        closed = []

        async def on_closed(link):
            closed.append(link)

        link, transport = await _open_link(make_transport, broadcaster, voice, on_closed)

        await link.close()
        await link.close()

        assert transport.closed
        assert len(closed) == 1
        assert broadcaster.named(LINK_CLOSED_EVENT) == []

    @pytest.mark.asyncio
    async def test_upstream_close_notifies_listeners(self, make_transport, broadcaster, voice):
        closed = []

        async def on_closed(link):
            closed.append(link)

        link, transport = await _open_link(make_transport, broadcaster, voice, on_closed)

        transport.hang_up()
        await asyncio.sleep(0.01)

        assert link.state is LinkState.CLOSED
        assert closed == [link]
        assert broadcaster.named(LINK_CLOSED_EVENT)[0]["reason"] == "upstream closed"


class TestMurfStreamConnector:
    def test_build_url(self, settings, broadcaster):
        connector = MurfStreamConnector(broadcaster, settings=settings)

        url = connector.build_url()
        query = parse_qs(urlparse(url).query)

        assert url.startswith("wss://api.murf.ai/v1/speech/stream-input?")
        assert query["api-key"] == ["test-murf-key"]
        assert query["sample_rate"] == ["44100"]
        assert query["channel_type"] == ["MONO"]
        assert query["format"] == ["MP3"]
        assert "test-murf-key" not in redact_url(url)

    def test_build_url_without_key(self, settings_factory, broadcaster):
        connector = MurfStreamConnector(broadcaster, settings=settings_factory(murf_api_key=None))

        assert connector.is_configured is False
        with pytest.raises(TTSConfigurationError):
            connector.build_url()

    @pytest.mark.asyncio
    async def test_open_returns_configured_link(self, settings, broadcaster, fake_connect, voice):
        connector = MurfStreamConnector(broadcaster, settings=settings, connect=fake_connect)

        link = await connector.open("s1", "en", voice)

        assert link.is_open
        assert len(fake_connect.calls) == 1
        assert "voice_config" in fake_connect.transports[0].sent[0]
        await link.close()

    @pytest.mark.asyncio
    async def test_handshake_failure(self, settings, broadcaster, make_connect, voice):
        connector = MurfStreamConnector(
            broadcaster, settings=settings, connect=make_connect(failures=1)
        )
        with pytest.raises(TTSConnectionError, match="handshake"):
            await connector.open("s1", "en", voice)

    @pytest.mark.asyncio
    async def test_connect_timeout(self, settings_factory, broadcaster, make_connect, voice):
        connector = MurfStreamConnector(
            broadcaster,
            settings=settings_factory(tts_connect_timeout_seconds=0.02),
            connect=make_connect(delay=0.5),
        )
        with pytest.raises(TTSConnectionError, match="timeout"):
            await connector.open("s1", "en", voice)


def test_encode_audio_for_json():
    assert encode_audio_for_json(b"ABC") == "QUJD"

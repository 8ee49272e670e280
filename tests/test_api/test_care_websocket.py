"""Tests for the care session WebSocket stream."""

from __future__ import annotations

import base64

import pytest
from starlette.websockets import WebSocketDisconnect

from src.api.websocket import to_wire_payload
from src.api.websocket.care_stream import SESSION_NOT_FOUND_CLOSE

PROJECT = {"id": "proj_acme", "name": "Acme Cloud"}


@pytest.fixture
def session_id(test_client) -> str:
    response = test_client.post(
        "/api/care/sessions",
        json={"customer_id": "cust_123456", "project": PROJECT, "session_id": "s1"},
    )
    assert response.status_code == 201
    return "s1"


class TestWirePayload:
    def test_bytes_become_base64(self) -> None:
        payload = {"sessionId": "s1", "audioChunk": b"\x00\x01", "isFinal": True}

        assert to_wire_payload(payload) == {
            "sessionId": "s1",
            "audioChunk": base64.b64encode(b"\x00\x01").decode("ascii"),
            "isFinal": True,
        }


class TestCareStream:
    def test_unknown_session_closed(self, test_client) -> None:
        with test_client.websocket_connect("/ws/care/missing") as ws:
            with pytest.raises(WebSocketDisconnect) as exc_info:
                ws.receive_json()

        assert exc_info.value.code == SESSION_NOT_FOUND_CLOSE

    def test_message_round_trip(self, test_client, session_id) -> None:
        with test_client.websocket_connect(f"/ws/care/{session_id}") as ws:
            ws.send_json({"event": "message", "text": "Can I change my plan?"})

            message = ws.receive_json()
            response = ws.receive_json()

        assert message["event"] == "care_message"
        assert message["data"]["message"] == "Happy to help with that."
        assert message["data"]["sender"] == "ai"
        assert message["data"]["ttsEnabled"] is True
        assert response["event"] == "care_response"
        assert response["data"]["messageCount"] == 1

    def test_audio_chunks_forwarded_as_base64(self, test_client, api_runtime, session_id) -> None:
        with test_client.websocket_connect(f"/ws/care/{session_id}") as ws:
            test_client.portal.call(
                api_runtime.broadcaster.publish,
                session_id,
                "care_audio_chunk",
                {"sessionId": session_id, "audioChunk": b"RIFF", "isFinal": False},
            )

            event = ws.receive_json()

        assert event["event"] == "care_audio_chunk"
        assert base64.b64decode(event["data"]["audioChunk"]) == b"RIFF"

    def test_unknown_event(self, test_client, session_id) -> None:
        with test_client.websocket_connect(f"/ws/care/{session_id}") as ws:
            ws.send_json({"event": "typing"})

            event = ws.receive_json()

        assert event == {
            "event": "care_error",
            "data": {"sessionId": session_id, "error": "Unknown event: typing"},
        }

    def test_blank_text_reported(self, test_client, session_id) -> None:
        with test_client.websocket_connect(f"/ws/care/{session_id}") as ws:
            ws.send_json({"event": "message", "text": "  "})

            event = ws.receive_json()

        assert event["event"] == "care_error"
        assert event["data"]["error"].startswith("Invalid message event")

    def test_malformed_voice_audio(self, test_client, session_id) -> None:
        with test_client.websocket_connect(f"/ws/care/{session_id}") as ws:
            ws.send_json({"event": "voice", "audio": "not base64!"})

            event = ws.receive_json()

        assert event["event"] == "care_error"

    def test_voice_message(self, test_client, api_runtime, session_id) -> None:
        audio = base64.b64encode(b"opus-bytes").decode("ascii")

        with test_client.websocket_connect(f"/ws/care/{session_id}") as ws:
            ws.send_json({"event": "voice", "audio": audio, "mimetype": "audio/ogg"})

            message = ws.receive_json()

        assert message["event"] == "care_message"
        assert message["data"]["type"] == "voice"
        assert api_runtime.transcriber.calls[0]["mimetype"] == "audio/ogg"

    def test_end_closes_stream(self, test_client, session_id) -> None:
        with test_client.websocket_connect(f"/ws/care/{session_id}") as ws:
            ws.send_json({"event": "end", "rating": 5})

            ended = ws.receive_json()
            with pytest.raises(WebSocketDisconnect):
                ws.receive_json()

        assert ended["event"] == "care_session_ended"
        assert ended["data"]["customerSatisfaction"] == 5
        assert test_client.get(f"/api/care/sessions/{session_id}").json()["status"] == "ended"

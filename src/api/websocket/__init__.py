"""WebSocket handlers for live care sessions."""

from src.api.websocket.care_stream import care_stream_endpoint, to_wire_payload

__all__ = [
    "care_stream_endpoint",
    "to_wire_payload",
]

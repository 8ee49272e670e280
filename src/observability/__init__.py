"""Observability module for metrics."""

from src.observability.metrics import (
    CARE_RESPONSE_LATENCY,
    CARE_SESSIONS_ACTIVE,
    VOICE_DEGRADED_TOTAL,
    VOICE_LINKS_ACTIVE,
    VOICE_QUEUE_DEPTH,
    record_pool_state,
    record_session_end,
)

__all__ = [
    "VOICE_LINKS_ACTIVE",
    "VOICE_QUEUE_DEPTH",
    "VOICE_DEGRADED_TOTAL",
    "CARE_SESSIONS_ACTIVE",
    "CARE_RESPONSE_LATENCY",
    "record_pool_state",
    "record_session_end",
]

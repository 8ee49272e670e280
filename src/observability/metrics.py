"""Prometheus metrics for the care voice service.

Provides metrics for monitoring voice pool saturation, upstream health,
and care session outcomes.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram, generate_latest
from prometheus_client.exposition import CONTENT_TYPE_LATEST

# =============================================================================
# Counters
# =============================================================================

VOICE_LINK_ESTABLISH_TOTAL = Counter(
    "carevoice_link_establish_total",
    "Upstream voice link establishment results",
    ["outcome"],
)

VOICE_QUEUE_TIMEOUTS = Counter(
    "carevoice_queue_timeouts_total",
    "Queued voice link requests that expired before being served",
)

VOICE_DEGRADED_TOTAL = Counter(
    "carevoice_voice_degraded_total",
    "Care sessions degraded to text-only",
    ["reason"],
)

CARE_SESSION_TOTAL = Counter(
    "carevoice_care_sessions_total",
    "Care sessions ended, by how they ended",
    ["end_reason"],
)

CARE_ESCALATIONS = Counter(
    "carevoice_care_escalations_total",
    "Care sessions escalated to high priority",
)

IDLE_REAPED_TOTAL = Counter(
    "carevoice_idle_reaped_total",
    "Idle links and sessions reclaimed by the sweeper",
    ["kind"],
)

# =============================================================================
# Gauges
# =============================================================================

VOICE_LINKS_ACTIVE = Gauge(
    "carevoice_links_active",
    "Currently open upstream voice links",
)

VOICE_QUEUE_DEPTH = Gauge(
    "carevoice_queue_depth",
    "Voice link requests waiting for capacity",
)

CARE_SESSIONS_ACTIVE = Gauge(
    "carevoice_care_sessions_active",
    "Currently active care sessions",
)

# =============================================================================
# Histograms
# =============================================================================

VOICE_LINK_CONNECT_LATENCY = Histogram(
    "carevoice_link_connect_seconds",
    "Time to establish an upstream voice link, including retries",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.0, 3.0, 5.0, 10.0, 20.0, 30.0],
)

VOICE_QUEUE_WAIT = Histogram(
    "carevoice_queue_wait_seconds",
    "Time a served voice link request spent queued",
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 20.0, 30.0],
)

CARE_RESPONSE_LATENCY = Histogram(
    "carevoice_care_response_seconds",
    "Time from customer message to delivered reply",
    buckets=[0.25, 0.5, 1.0, 1.5, 2.0, 3.0, 5.0, 8.0, 13.0],
)

CARE_SESSION_DURATION = Histogram(
    "carevoice_care_session_duration_seconds",
    "Care session duration in seconds",
    buckets=[30, 60, 120, 300, 600, 900, 1800, 3600],
)

# =============================================================================
# Helper Functions
# =============================================================================


def record_session_end(end_reason: str, duration_seconds: float) -> None:
    """Record metrics for an ended care session.

    Args:
        end_reason: How the session ended (ended, timeout, shutdown)
        duration_seconds: Total session duration
    """
    CARE_SESSION_TOTAL.labels(end_reason=end_reason).inc()
    CARE_SESSION_DURATION.observe(duration_seconds)


def record_pool_state(active_links: int, queue_depth: int) -> None:
    """Publish the pool's current occupancy."""
    VOICE_LINKS_ACTIVE.set(active_links)
    VOICE_QUEUE_DEPTH.set(queue_depth)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_content_type() -> str:
    """Get Prometheus content type header."""
    return CONTENT_TYPE_LATEST

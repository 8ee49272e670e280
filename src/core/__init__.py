"""Core care session components.

This module provides the orchestration for care conversations:
- VoiceConnectionPool: Bounded, queued pool of upstream voice links
- CareOrchestrator: Per-session state machine and reply delivery
- IdleReaper: Periodic reclamation of idle links and sessions
- CareRuntime: Wiring of all of the above
"""

from src.core.broadcaster import BroadcastEvent, InMemorySessionBroadcaster, Subscription
from src.core.care_orchestrator import CareConfig, CareOrchestrator
from src.core.care_session import (
    CareSession,
    Priority,
    SessionStatus,
    SessionSummary,
    TurnOutcome,
    VoiceMode,
)
from src.core.idle_reaper import IdleReaper, SweepResult
from src.core.runtime import CareRuntime, build_runtime
from src.core.voice_pool import (
    ConnectAttemptResult,
    PendingRequest,
    PoolStats,
    VoiceConnectionPool,
    VoicePoolConfig,
)

__all__ = [
    # Broadcasting
    "BroadcastEvent",
    "InMemorySessionBroadcaster",
    "Subscription",
    # Voice pool
    "VoiceConnectionPool",
    "VoicePoolConfig",
    "PendingRequest",
    "ConnectAttemptResult",
    "PoolStats",
    # Sessions
    "CareOrchestrator",
    "CareConfig",
    "CareSession",
    "SessionStatus",
    "SessionSummary",
    "TurnOutcome",
    "VoiceMode",
    "Priority",
    # Lifecycle
    "IdleReaper",
    "SweepResult",
    "CareRuntime",
    "build_runtime",
]

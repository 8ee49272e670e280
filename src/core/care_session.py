"""Care session state owned by the orchestrator."""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from src.services.llm.protocol import Message, ProjectContext, Role


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    ACTIVE = "active"
    ENDED = "ended"


class VoiceMode(str, Enum):
    """Voice sub-state of an active session.

    PENDING only exists while the session waits for its first link;
    DEGRADED is terminal.
    """

    PENDING = "pending"
    ENABLED = "enabled"
    DEGRADED = "degraded"


class Priority(str, Enum):
    NORMAL = "normal"
    HIGH = "high"


@dataclass
class CareSession:
    """One customer's conversation with the care assistant.

    Holds only the session id as a reference into the voice pool, never
    the link itself.
    """

    session_id: str
    customer_id: str
    project: ProjectContext
    language: str = "en"
    customer_info: dict[str, Any] = field(default_factory=dict)
    max_history: int = 10

    status: SessionStatus = SessionStatus.INITIALIZING
    voice_mode: VoiceMode = VoiceMode.PENDING
    priority: Priority = Priority.NORMAL
    tags: set[str] = field(default_factory=set)

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = field(init=False)
    started_monotonic: float = field(default_factory=time.monotonic, repr=False)

    message_count: int = 0
    response_count: int = 0
    avg_response_ms: float = 0.0
    turn_in_flight: bool = field(default=False, repr=False)
    history: deque[Message] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.last_activity = self.created_at
        self.history = deque(maxlen=self.max_history)

    @property
    def voice_enabled(self) -> bool:
        return self.voice_mode is VoiceMode.ENABLED

    @property
    def is_active(self) -> bool:
        return self.status is SessionStatus.ACTIVE

    def touch(self, now: datetime | None = None) -> None:
        """Record activity; last_activity never moves backwards."""
        now = now or datetime.now(UTC)
        if now > self.last_activity:
            self.last_activity = now

    def enable_voice(self) -> bool:
        """Switch voice on unless the session has already degraded."""
        if self.voice_mode is VoiceMode.PENDING:
            self.voice_mode = VoiceMode.ENABLED
        return self.voice_enabled

    def degrade_voice(self) -> bool:
        """One-way switch to text-only. Returns True on the first call."""
        if self.voice_mode is VoiceMode.DEGRADED:
            return False
        self.voice_mode = VoiceMode.DEGRADED
        return True

    def escalate(self, tag: str) -> bool:
        """Raise priority and tag the session. Returns True if newly escalated."""
        self.tags.add(tag)
        if self.priority is Priority.HIGH:
            return False
        self.priority = Priority.HIGH
        return True

    def record_response_time(self, elapsed_ms: float) -> None:
        self.response_count += 1
        self.avg_response_ms += (elapsed_ms - self.avg_response_ms) / self.response_count

    def remember(self, role: Role, content: str) -> None:
        self.history.append(Message(role=role, content=content))

    def duration_seconds(self) -> float:
        return time.monotonic() - self.started_monotonic

    def to_info(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "customerId": self.customer_id,
            "projectId": self.project.project_id,
            "language": self.language,
            "status": self.status.value,
            "voiceEnabled": self.voice_enabled,
            "voiceMode": self.voice_mode.value,
            "messageCount": self.message_count,
            "avgResponseTime": round(self.avg_response_ms, 1),
            "priority": self.priority.value,
            "tags": sorted(self.tags),
            "createdAt": self.created_at.isoformat(),
            "lastActivity": self.last_activity.isoformat(),
        }


@dataclass(frozen=True)
class SessionSummary:
    """Aggregate counters returned when a session ends."""

    session_id: str
    duration_seconds: float
    message_count: int
    avg_response_ms: float
    priority: Priority
    tags: tuple[str, ...]
    end_reason: str
    customer_satisfaction: int | None = None
    feedback: str | None = None
    ended_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "duration": round(self.duration_seconds * 1000),
            "messageCount": self.message_count,
            "avgResponseTime": round(self.avg_response_ms, 1),
            "customerSatisfaction": self.customer_satisfaction,
            "priority": self.priority.value,
            "tags": list(self.tags),
            "feedback": self.feedback,
            "endReason": self.end_reason,
            "endedAt": self.ended_at.isoformat(),
        }


@dataclass(frozen=True)
class TurnOutcome:
    """Result of one inbound turn; a degraded voice path still succeeds."""

    session_id: str
    response: str
    message_type: str
    voice_delivered: bool
    voice_enabled: bool
    emotion: dict[str, Any] | None = None
    priority: Priority = Priority.NORMAL
    response_ms: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "response": self.response,
            "type": self.message_type,
            "voiceDelivered": self.voice_delivered,
            "ttsEnabled": self.voice_enabled,
            "emotion": self.emotion,
            "priority": self.priority.value,
            "responseTime": round(self.response_ms, 1),
        }

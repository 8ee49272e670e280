"""Care conversation orchestration.

Coordinates each care session: acquires a voice link from the pool, turns
customer messages into replies, and delivers every reply as text with voice
on top when the session still has it. Voice failures degrade the session to
text-only for good; they never fail a turn.
"""

from __future__ import annotations

import time
import uuid
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from src.config import Settings, get_settings
from src.core.care_messages import error_message, repeat_message, shape_reply, welcome_message
from src.core.care_session import (
    CareSession,
    Priority,
    SessionStatus,
    SessionSummary,
    TurnOutcome,
)
from src.core.exceptions import (
    CareSessionBusyError,
    CareSessionConflictError,
    CareSessionNotFoundError,
    CareSessionNotReadyError,
)
from src.core.voice_pool import VoiceConnectionPool
from src.logging_config import get_logger, mask_customer_id
from src.observability.metrics import (
    CARE_ESCALATIONS,
    CARE_RESPONSE_LATENCY,
    CARE_SESSIONS_ACTIVE,
    VOICE_DEGRADED_TOTAL,
    record_session_end,
)
from src.services.emotion.protocol import EmotionClassifier, EmotionResult
from src.services.llm.exceptions import LLMServiceError
from src.services.llm.protocol import ProjectContext, ReplyContext, ReplyService, Role
from src.services.stt.exceptions import STTServiceError, TranscriptionEmptyError
from src.services.stt.protocol import Transcriber
from src.services.tts.exceptions import (
    TTSConfigurationError,
    TTSNotOpenError,
    TTSQueueCancelledError,
    TTSQueueTimeoutError,
    TTSSendError,
    TTSServiceError,
)
from src.services.tts.protocol import SessionBroadcaster

logger: Any = get_logger(__name__)

MESSAGE_EVENT = "care_message"
RESPONSE_EVENT = "care_response"
VOICE_UNAVAILABLE_EVENT = "care_voice_unavailable"
SESSION_ENDED_EVENT = "care_session_ended"

ESCALATION_EMOTIONS = frozenset({
    "anger", "angry", "frustration", "frustrated", "disappointment", "disappointed",
})
ESCALATION_TAG = "emotional_escalation"


@dataclass
class CareConfig:
    """Care session tunables."""

    escalation_confidence_threshold: float = 0.7
    session_idle_timeout_seconds: float = 1800.0
    max_history: int = 10
    ended_summary_capacity: int = 1000

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> CareConfig:
        s = settings or get_settings()
        return cls(
            escalation_confidence_threshold=s.escalation_confidence_threshold,
            session_idle_timeout_seconds=s.care_session_idle_timeout_seconds,
            max_history=s.care_max_history,
        )


def _degrade_reason(error: TTSServiceError) -> str:
    if isinstance(error, TTSConfigurationError):
        return "unconfigured"
    if isinstance(error, TTSQueueTimeoutError):
        return "queue_timeout"
    if isinstance(error, TTSQueueCancelledError):
        return "cancelled"
    if isinstance(error, TTSSendError):
        return "send_failed"
    if isinstance(error, TTSNotOpenError):
        return "link_closed"
    return "connect_failed"


class CareOrchestrator:
    """Owns care sessions and drives the voice pool on their behalf."""

    def __init__(
        self,
        pool: VoiceConnectionPool,
        broadcaster: SessionBroadcaster,
        reply_service: ReplyService,
        emotion_classifier: EmotionClassifier,
        transcriber: Transcriber | None = None,
        config: CareConfig | None = None,
    ) -> None:
        self._pool = pool
        self._broadcaster = broadcaster
        self._reply_service = reply_service
        self._emotion = emotion_classifier
        self._transcriber = transcriber
        self.config = config or CareConfig.from_settings()

        self._sessions: dict[str, CareSession] = {}
        self._ended: OrderedDict[str, SessionSummary] = OrderedDict()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def start_session(
        self,
        customer_id: str,
        project: ProjectContext,
        language: str = "en",
        customer_info: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> CareSession:
        """Create a session, try to give it voice, and send the welcome message.

        Voice unavailability never fails session creation.

        Raises:
            CareSessionConflictError: If session_id is already active
        """
        session_id = session_id or self._new_session_id(customer_id)
        if session_id in self._sessions:
            raise CareSessionConflictError(session_id)
        self._ended.pop(session_id, None)

        session = CareSession(
            session_id=session_id,
            customer_id=customer_id,
            project=project,
            language=language,
            customer_info=dict(customer_info or {}),
            max_history=self.config.max_history,
        )
        self._sessions[session_id] = session
        CARE_SESSIONS_ACTIVE.set(len(self._sessions))
        logger.info(
            f"Starting care session {session_id} for customer "
            f"{mask_customer_id(customer_id)} (project: {project.project_id}, lang: {language})"
        )

        try:
            await self._pool.acquire(session_id, language)
            session.enable_voice()
        except TTSServiceError as e:
            if session.status is not SessionStatus.ENDED:
                logger.warning(f"Continuing session {session_id} without voice: {e}")
                await self._degrade(session, e)
        except BaseException:
            if self._sessions.get(session_id) is session:
                del self._sessions[session_id]
                CARE_SESSIONS_ACTIVE.set(len(self._sessions))
            raise

        if session.status is SessionStatus.ENDED:
            logger.info(f"Session {session_id} ended before it became active")
            return session

        session.status = SessionStatus.ACTIVE
        await self._deliver(session, welcome_message(project.name, language), "welcome")
        return session

    async def end_session(
        self,
        session_id: str,
        rating: int | None = None,
        feedback: str | None = None,
        reason: str = "ended",
    ) -> SessionSummary:
        """End a session and release its voice link.

        Ending an already-ended session returns the stored summary.

        Raises:
            CareSessionNotFoundError: If the session was never known here
        """
        session = self._sessions.pop(session_id, None)
        if session is None:
            summary = self._ended.get(session_id)
            if summary is None:
                raise CareSessionNotFoundError(session_id)
            return summary

        session.status = SessionStatus.ENDED
        if reason != "ended":
            session.tags.add(reason)

        duration = session.duration_seconds()
        summary = SessionSummary(
            session_id=session_id,
            duration_seconds=duration,
            message_count=session.message_count,
            avg_response_ms=session.avg_response_ms,
            priority=session.priority,
            tags=tuple(sorted(session.tags)),
            end_reason=reason,
            customer_satisfaction=rating,
            feedback=feedback,
        )
        self._remember_summary(summary)
        CARE_SESSIONS_ACTIVE.set(len(self._sessions))
        record_session_end(reason, duration)

        await self._pool.release(session_id)
        await self._broadcaster.publish(session_id, SESSION_ENDED_EVENT, summary.to_dict())

        logger.info(
            f"Care session {session_id} ended ({reason}): {session.message_count} messages, "
            f"avg response {session.avg_response_ms:.0f}ms, {duration:.1f}s"
        )
        return summary

    async def shutdown(self) -> None:
        """End every active session."""
        for session_id in list(self._sessions):
            await self.end_session(session_id, reason="shutdown")

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    async def handle_inbound_message(
        self,
        session_id: str,
        text: str,
        message_type: str = "text",
    ) -> TurnOutcome:
        """Handle one customer text message and deliver the reply.

        Raises:
            CareSessionNotFoundError: If the session is not active
            CareSessionNotReadyError: If the session is still starting
            CareSessionBusyError: If a turn is already in flight for the session
            ValueError: If text is blank
        """
        if not text or not text.strip():
            raise ValueError("Message text is required")
        async with self._turn(session_id) as session:
            return await self._run_turn(session, text.strip(), message_type)

    async def handle_voice_message(
        self,
        session_id: str,
        audio: bytes,
        mimetype: str = "audio/webm",
    ) -> TurnOutcome:
        """Transcribe a recorded voice message and handle it as a turn.

        An unintelligible recording asks the customer to repeat instead of
        failing.
        """
        async with self._turn(session_id) as session:
            if self._transcriber is None:
                logger.warning(f"Voice message for {session_id} but no transcriber configured")
                return await self._reply_without_turn(session, error_message(session.language))

            try:
                transcript, _ = await self._transcriber.transcribe(
                    audio, language=session.language, mimetype=mimetype
                )
            except TranscriptionEmptyError:
                logger.info(f"Empty transcription for session {session_id}")
                return await self._reply_without_turn(session, repeat_message(session.language))
            except STTServiceError as e:
                logger.error(f"Transcription failed for session {session_id}: {e}")
                return await self._reply_without_turn(session, error_message(session.language))

            return await self._run_turn(session, transcript, "voice")

    async def _run_turn(self, session: CareSession, text: str, message_type: str) -> TurnOutcome:
        start_time = time.perf_counter()
        session.touch()
        session.message_count += 1

        emotion = self._emotion.classify(text, session.language)
        self._check_escalation(session, emotion)

        context = ReplyContext(
            session_id=session.session_id,
            project=session.project,
            language=session.language,
            history=list(session.history),
            emotion=emotion.primary,
        )
        try:
            reply, _ = await self._reply_service.generate_reply(text, context)
            reply = shape_reply(reply, emotion.primary, session.language)
            reply_type = "response"
        except LLMServiceError as e:
            logger.error(f"Reply generation failed for session {session.session_id}: {e}")
            reply = error_message(session.language)
            reply_type = "error"

        session.remember(Role.USER, text)
        session.remember(Role.ASSISTANT, reply)

        voice_delivered = await self._deliver(session, reply, reply_type)

        elapsed_ms = (time.perf_counter() - start_time) * 1000
        session.record_response_time(elapsed_ms)
        CARE_RESPONSE_LATENCY.observe(elapsed_ms / 1000)
        session.touch()

        outcome = TurnOutcome(
            session_id=session.session_id,
            response=reply,
            message_type=message_type,
            voice_delivered=voice_delivered,
            voice_enabled=session.voice_enabled,
            emotion=emotion.to_dict(),
            priority=session.priority,
            response_ms=elapsed_ms,
        )
        if session.status is SessionStatus.ENDED:
            return outcome
        await self._broadcaster.publish(
            session.session_id,
            RESPONSE_EVENT,
            {
                **outcome.to_dict(),
                "messageCount": session.message_count,
                "avgResponseTime": round(session.avg_response_ms, 1),
            },
        )
        return outcome

    async def _reply_without_turn(self, session: CareSession, text: str) -> TurnOutcome:
        session.touch()
        voice_delivered = await self._deliver(session, text, "error")
        return TurnOutcome(
            session_id=session.session_id,
            response=text,
            message_type="error",
            voice_delivered=voice_delivered,
            voice_enabled=session.voice_enabled,
            priority=session.priority,
        )

    @asynccontextmanager
    async def _turn(self, session_id: str) -> AsyncIterator[CareSession]:
        session = self._sessions.get(session_id)
        if session is None:
            raise CareSessionNotFoundError(session_id)
        if session.status is not SessionStatus.ACTIVE:
            raise CareSessionNotReadyError(session_id)
        if session.turn_in_flight:
            raise CareSessionBusyError(session_id)
        session.turn_in_flight = True
        try:
            yield session
        finally:
            session.turn_in_flight = False

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver(self, session: CareSession, text: str, message_type: str) -> bool:
        """Send text through voice if enabled, then always as a text message.

        Nothing goes out once the session has ended.

        Returns:
            True if the text reached the voice link
        """
        if session.status is SessionStatus.ENDED:
            logger.info(f"Session {session.session_id} ended, dropping {message_type} message")
            return False

        voice_delivered = False
        if session.voice_enabled:
            try:
                await self._pool.send_text(session.session_id, text)
                voice_delivered = True
            except TTSServiceError as e:
                logger.warning(f"Voice delivery failed for session {session.session_id}: {e}")
                await self._pool.release(session.session_id)
                await self._degrade(session, e)

        await self._broadcaster.publish(
            session.session_id,
            MESSAGE_EVENT,
            {
                "sessionId": session.session_id,
                "message": text,
                "type": message_type,
                "sender": "ai",
                "timestamp": datetime.now(UTC).isoformat(),
                "ttsEnabled": session.voice_enabled,
            },
        )
        return voice_delivered

    async def _degrade(self, session: CareSession, error: TTSServiceError) -> None:
        if not session.degrade_voice():
            return
        reason = _degrade_reason(error)
        VOICE_DEGRADED_TOTAL.labels(reason=reason).inc()
        logger.info(f"Session {session.session_id} is now text-only ({reason})")
        await self._broadcaster.publish(
            session.session_id,
            VOICE_UNAVAILABLE_EVENT,
            {"sessionId": session.session_id, "reason": reason, "error": str(error)},
        )

    def _check_escalation(self, session: CareSession, emotion: EmotionResult) -> None:
        if emotion.primary.lower() not in ESCALATION_EMOTIONS:
            return
        if emotion.confidence <= self.config.escalation_confidence_threshold:
            return
        if session.escalate(ESCALATION_TAG):
            CARE_ESCALATIONS.inc()
            logger.warning(
                f"Escalated session {session.session_id} to high priority "
                f"({emotion.primary}, confidence {emotion.confidence:.2f})"
            )

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> CareSession | None:
        return self._sessions.get(session_id)

    def get_session_info(self, session_id: str) -> dict[str, Any] | None:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        info = session.to_info()
        info["voiceLink"] = self._pool.connection_info(session_id)
        return info

    def get_summary(self, session_id: str) -> SessionSummary | None:
        return self._ended.get(session_id)

    def active_sessions(self) -> list[dict[str, Any]]:
        return [info for sid in list(self._sessions) if (info := self.get_session_info(sid))]

    def idle_session_ids(self, now: datetime | None = None) -> list[str]:
        """Sessions with no activity within the idle timeout."""
        now = now or datetime.now(UTC)
        cutoff = now - timedelta(seconds=self.config.session_idle_timeout_seconds)
        return [sid for sid, s in self._sessions.items() if s.last_activity < cutoff]

    def stats(self) -> dict[str, Any]:
        sessions = list(self._sessions.values())
        return {
            "activeSessions": len(sessions),
            "voiceEnabled": sum(1 for s in sessions if s.voice_enabled),
            "highPriority": sum(1 for s in sessions if s.priority is Priority.HIGH),
            "endedSessions": len(self._ended),
            "voicePool": self._pool.stats().to_dict(),
        }

    def _remember_summary(self, summary: SessionSummary) -> None:
        self._ended[summary.session_id] = summary
        self._ended.move_to_end(summary.session_id)
        while len(self._ended) > self.config.ended_summary_capacity:
            self._ended.popitem(last=False)

    @staticmethod
    def _new_session_id(customer_id: str) -> str:
        return f"care_{customer_id}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"

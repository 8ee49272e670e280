"""Tests for care session state and response shaping."""

from datetime import UTC, datetime, timedelta

import pytest

from src.core.care_messages import (
    ENCOURAGEMENT_SUFFIXES,
    REPEAT_MESSAGES,
    error_message,
    repeat_message,
    shape_reply,
    welcome_message,
)
from src.core.care_session import CareSession, Priority, VoiceMode
from src.services.llm.protocol import ProjectContext, Role


@pytest.fixture
def session() -> CareSession:
    return CareSession(
        session_id="s1",
        customer_id="cust_42",
        project=ProjectContext(project_id="p1", name="Acme"),
        max_history=4,
    )


class TestCareSession:
    def test_voice_degradation_is_one_way(self, session):
        assert session.voice_mode is VoiceMode.PENDING
        assert session.enable_voice() is True

        assert session.degrade_voice() is True
        assert session.degrade_voice() is False
        assert session.enable_voice() is False
        assert session.voice_enabled is False

    def test_degraded_before_enabled_stays_degraded(self, session):
        session.degrade_voice()
        assert session.enable_voice() is False

    def test_touch_never_moves_backwards(self, session):
        later = session.last_activity + timedelta(seconds=5)
        session.touch(later)
        session.touch(later - timedelta(minutes=1))

        assert session.last_activity == later

    def test_escalate(self, session):
        assert session.escalate("emotional_escalation") is True
        assert session.escalate("emotional_escalation") is False
        assert session.priority is Priority.HIGH
        assert session.tags == {"emotional_escalation"}

    def test_running_average(self, session):
        for elapsed in (100.0, 200.0, 600.0):
            session.record_response_time(elapsed)

        assert session.avg_response_ms == pytest.approx(300.0)

    def test_history_is_bounded(self, session):
        for i in range(6):
            session.remember(Role.USER, f"message {i}")

        assert [m.content for m in session.history] == [f"message {i}" for i in range(2, 6)]

    def test_info(self, session):
        session.created_at = datetime(2026, 1, 1, tzinfo=UTC)
        info = session.to_info()

        assert info["sessionId"] == "s1"
        assert info["status"] == "initializing"
        assert info["priority"] == "normal"


class TestCareMessages:
    def test_welcome_message(self):
        message = welcome_message("Acme Cloud")
        assert message.startswith("Hello! I'm your AI assistant for Acme Cloud.")

    def test_welcome_message_localized(self):
        assert "Acme Cloud" in welcome_message("Acme Cloud", "hi-IN")
        assert welcome_message("Acme", "fr") == welcome_message("Acme", "en")

    def test_repeat_and_error_messages(self):
        assert repeat_message("en") == REPEAT_MESSAGES["en"]
        assert repeat_message("ja") == REPEAT_MESSAGES["en"]
        assert "technical difficulties" in error_message()

    def test_shape_reply_negative(self):
        shaped = shape_reply("We are on it.", "anger")
        assert shaped == "I understand this might be frustrating. We are on it."

    def test_shape_reply_positive(self):
        shaped = shape_reply("Done.", "joy")
        assert shaped == "Done." + ENCOURAGEMENT_SUFFIXES["en"]

    def test_shape_reply_without_localized_phrase(self):
        assert shape_reply("Hecho.", "anger", "es") == "Hecho."

    def test_shape_reply_neutral(self):
        assert shape_reply("Sure.", "neutral") == "Sure."
        assert shape_reply("Sure.", None) == "Sure."

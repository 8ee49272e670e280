"""Reply generation protocol and data types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol


class Role(str, Enum):
    """Message role in conversation."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True, slots=True)
class Message:
    """A single message in conversation history."""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True, slots=True)
class ProjectContext:
    """The customer's project the care conversation is about."""

    project_id: str
    name: str
    description: str = ""
    knowledge: tuple[str, ...] = ()  # Pre-retrieved document excerpts


@dataclass
class ReplyContext:
    """Context passed to reply generation for one turn."""

    session_id: str
    project: ProjectContext
    language: str = "en"
    history: list[Message] = field(default_factory=list)
    emotion: str | None = None


@dataclass
class ReplyMetadata:
    """Metadata collected while generating a reply."""

    model: str = ""
    first_token_ms: float | None = None
    total_ms: float | None = None
    total_tokens: int | None = None
    finish_reason: str | None = None


class ReplyService(Protocol):
    """Protocol for reply generation implementations."""

    async def generate_reply(
        self,
        text: str,
        context: ReplyContext,
    ) -> tuple[str, ReplyMetadata]:
        """Generate the assistant reply for one customer message.

        Raises:
            LLMServiceError: On any generation failure
        """
        ...

    async def close(self) -> None: ...

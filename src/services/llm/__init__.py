"""Reply generation services (Groq)."""

from src.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMEmptyReplyError,
    LLMRateLimitError,
    LLMServiceError,
)
from src.services.llm.groq import GroqReplyService
from src.services.llm.protocol import (
    Message,
    ProjectContext,
    ReplyContext,
    ReplyMetadata,
    ReplyService,
    Role,
)
from src.services.llm.rate_limiter import TokenBucketRateLimiter
from src.services.llm.token_counter import estimate_tokens

__all__ = [
    # Protocol and types
    "ReplyService",
    "Message",
    "Role",
    "ProjectContext",
    "ReplyContext",
    "ReplyMetadata",
    # Implementation
    "GroqReplyService",
    # Utilities
    "TokenBucketRateLimiter",
    "estimate_tokens",
    # Exceptions
    "LLMServiceError",
    "LLMRateLimitError",
    "LLMConnectionError",
    "LLMAuthenticationError",
    "LLMEmptyReplyError",
]

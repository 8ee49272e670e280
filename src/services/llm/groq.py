"""Groq reply generation for customer care conversations."""

from __future__ import annotations

import time
from typing import Any

import groq
from groq import AsyncGroq

from src.config import Settings, get_settings
from src.logging_config import get_logger
from src.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMEmptyReplyError,
    LLMRateLimitError,
    LLMServiceError,
)
from src.services.llm.protocol import Message, ReplyContext, ReplyMetadata
from src.services.llm.rate_limiter import TokenBucketRateLimiter
from src.services.llm.token_counter import estimate_tokens

logger: Any = get_logger(__name__)

# Groq free tier limits
GROQ_FREE_TIER_TPM = 6000  # Tokens per minute
GROQ_FREE_TIER_RPM = 30  # Requests per minute

# Keep knowledge injection from crowding out the conversation
MAX_KNOWLEDGE_TOKENS = 800

LANGUAGE_NAMES = {
    "en": "English",
    "hi": "Hindi",
    "bn": "Bengali",
    "ta": "Tamil",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "nl": "Dutch",
    "pt": "Portuguese",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
}


class GroqReplyService:
    """Generates care replies with Groq, streaming and collecting the answer."""

    def __init__(
        self,
        settings: Settings | None = None,
        model: str | None = None,
        max_tokens: int = 300,
        temperature: float = 0.4,
    ) -> None:
        self._settings = settings or get_settings()
        self._model = model or self._settings.groq_model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._client: AsyncGroq | None = None
        self._rate_limiter = TokenBucketRateLimiter(
            tokens_per_minute=GROQ_FREE_TIER_TPM,
            requests_per_minute=GROQ_FREE_TIER_RPM,
        )

    @property
    def client(self) -> AsyncGroq:
        """Lazy initialization of AsyncGroq client."""
        if self._client is None:
            if not self._settings.groq_api_key:
                raise LLMAuthenticationError("Groq API key is not configured")
            self._client = AsyncGroq(
                api_key=self._settings.groq_api_key.get_secret_value(),
                timeout=30.0,
                max_retries=2,
            )
        return self._client

    async def generate_reply(
        self,
        text: str,
        context: ReplyContext,
    ) -> tuple[str, ReplyMetadata]:
        """Generate the assistant reply for one customer message.

        Raises:
            LLMRateLimitError: When rate limit exceeded
            LLMConnectionError: When API unreachable
            LLMAuthenticationError: When API key missing or invalid
            LLMEmptyReplyError: When the model returns nothing
            LLMServiceError: For other API errors
        """
        api_messages = self.build_messages(text, context)
        estimated_total = (
            sum(estimate_tokens(m["content"]) for m in api_messages) + self._max_tokens
        )
        await self._rate_limiter.acquire(estimated_total)

        metadata = ReplyMetadata(model=self._model)
        start_time = time.perf_counter()
        parts: list[str] = []

        try:
            stream = await self.client.chat.completions.create(
                messages=api_messages,  # type: ignore[arg-type]
                model=self._model,
                temperature=self._temperature,
                max_tokens=self._max_tokens,
                stream=True,
            )

            async for chunk in stream:  # type: ignore[union-attr]
                if metadata.first_token_ms is None:
                    metadata.first_token_ms = (time.perf_counter() - start_time) * 1000

                if chunk.choices and chunk.choices[0].delta.content:
                    parts.append(chunk.choices[0].delta.content)

                if chunk.choices and chunk.choices[0].finish_reason:
                    metadata.finish_reason = chunk.choices[0].finish_reason

                # Groq reports usage in the x_groq extension of the last chunk
                x_groq = getattr(chunk, "x_groq", None)
                if x_groq is not None and getattr(x_groq, "usage", None):
                    metadata.total_tokens = x_groq.usage.total_tokens
                    self._rate_limiter.record_usage(estimated_total, x_groq.usage.total_tokens)

        except groq.RateLimitError as e:
            logger.warning(f"Groq rate limit hit: {e}")
            raise LLMRateLimitError(
                "Rate limit exceeded",
                retry_after=self._extract_retry_after(e),
            ) from e

        except groq.APIConnectionError as e:
            logger.error(f"Groq connection error: {e.__cause__}")
            raise LLMConnectionError("Failed to connect to Groq API") from e

        except groq.AuthenticationError as e:
            logger.error("Groq authentication failed")
            raise LLMAuthenticationError("Invalid Groq API key") from e

        except groq.APIStatusError as e:
            logger.error(f"Groq API error: {e.status_code} - {e.message}")
            raise LLMServiceError(f"Groq API error: {e.status_code}") from e

        reply = "".join(parts).strip()
        metadata.total_ms = (time.perf_counter() - start_time) * 1000
        if not reply:
            raise LLMEmptyReplyError(f"Empty reply for session {context.session_id}")

        logger.debug(
            f"Reply for {context.session_id} in {metadata.total_ms:.0f}ms "
            f"(first token {metadata.first_token_ms or 0:.0f}ms)"
        )
        return reply, metadata

    def build_messages(self, text: str, context: ReplyContext) -> list[dict]:
        """Format system prompt, bounded history and the new message for Groq."""
        api_messages = [{"role": "system", "content": self._build_system_prompt(context)}]
        api_messages.extend(self._format_history(context.history))
        api_messages.append({"role": "user", "content": text})
        return api_messages

    def _build_system_prompt(self, context: ReplyContext) -> str:
        project = context.project
        language_name = LANGUAGE_NAMES.get(context.language.split("-")[0], context.language)

        prompt = f"""You are a friendly customer care assistant for {project.name}.

## About
{project.description or "No description provided."}

## Guidelines
- Answer in {language_name}
- Keep answers short (2-3 sentences); they may be spoken aloud
- Only answer from the information you have; if unsure, say so and offer a human follow-up
- Never invent prices, dates or policies
"""

        if context.emotion in {"anger", "sadness", "fear", "disgust"}:
            prompt += "- The customer seems upset: acknowledge it before answering\n"

        if project.knowledge:
            knowledge_lines: list[str] = []
            used_tokens = 0
            for excerpt in project.knowledge:
                excerpt_tokens = estimate_tokens(excerpt)
                if used_tokens + excerpt_tokens > MAX_KNOWLEDGE_TOKENS:
                    logger.info(
                        f"Truncated knowledge to {len(knowledge_lines)} of "
                        f"{len(project.knowledge)} excerpts"
                    )
                    break
                knowledge_lines.append(f"- {excerpt}")
                used_tokens += excerpt_tokens
            if knowledge_lines:
                prompt += "\n## Relevant Information\n" + "\n".join(knowledge_lines) + "\n"

        return prompt

    def _format_history(self, history: list[Message]) -> list[dict]:
        return [{"role": msg.role.value, "content": msg.content} for msg in history]

    def _extract_retry_after(self, error: groq.RateLimitError) -> float:
        """Extract retry-after from rate limit error."""
        if hasattr(error, "response") and error.response:
            retry_after = error.response.headers.get("retry-after")
            if retry_after:
                try:
                    return float(retry_after)
                except ValueError:
                    pass
        return 60.0

    async def health_check(self) -> bool:
        """Whether an API key is configured (no network call)."""
        return bool(self._settings.groq_api_key)

    async def close(self) -> None:
        """Close the client connection."""
        if self._client:
            await self._client.close()
            self._client = None

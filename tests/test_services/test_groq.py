"""Tests for Groq reply generation."""

from __future__ import annotations

import os
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import groq
import httpx
import pytest

from src.services.llm.exceptions import (
    LLMAuthenticationError,
    LLMConnectionError,
    LLMEmptyReplyError,
    LLMRateLimitError,
)
from src.services.llm.groq import MAX_KNOWLEDGE_TOKENS, GroqReplyService
from src.services.llm.protocol import Message, ProjectContext, ReplyContext, Role

GROQ_URL = "https://api.groq.com/openai/v1/chat/completions"


def _chunk(content: str | None = None, finish_reason: str | None = None, usage: int | None = None):
    return SimpleNamespace(
        choices=[SimpleNamespace(delta=SimpleNamespace(content=content), finish_reason=finish_reason)],
        x_groq=SimpleNamespace(usage=SimpleNamespace(total_tokens=usage)) if usage else None,
    )


async def _stream(*chunks):
    for chunk in chunks:
        yield chunk


@pytest.fixture
def context(project) -> ReplyContext:
    return ReplyContext(session_id="s1", project=project, language="hi")


@pytest.fixture
def service(settings_factory) -> GroqReplyService:
    return GroqReplyService(settings=settings_factory())


@pytest.fixture
def mock_client(service) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    client.close = AsyncMock()
    service._client = client
    return client


class TestPromptBuilding:
    def test_system_prompt_uses_project_and_language(self, service, context):
        prompt = service._build_system_prompt(context)

        assert "Acme Cloud" in prompt
        assert "Managed hosting" in prompt
        assert "Answer in Hindi" in prompt

    def test_upset_customer_guideline(self, service, context):
        context.emotion = "anger"
        assert "seems upset" in service._build_system_prompt(context)

    def test_knowledge_is_budgeted(self, service, project):
        excerpt = "x" * 2000
        context = ReplyContext(
            session_id="s1",
            project=ProjectContext(project_id="p", name="P", knowledge=(excerpt,) * 5),
        )
        prompt = service._build_system_prompt(context)

        assert "Relevant Information" in prompt
        # One excerpt is ~551 tokens, so only one fits the budget
        assert prompt.count(excerpt) == 1
        assert MAX_KNOWLEDGE_TOKENS < 2 * 551

    def test_build_messages_includes_history(self, service, context):
        context.history = [
            Message(role=Role.USER, content="Hi"),
            Message(role=Role.ASSISTANT, content="Hello!"),
        ]
        messages = service.build_messages("Is my site down?", context)

        assert [m["role"] for m in messages] == ["system", "user", "assistant", "user"]
        assert messages[-1]["content"] == "Is my site down?"


class TestGenerateReply:
    @pytest.mark.asyncio
    async def test_collects_streamed_reply(self, service, mock_client, context):
        mock_client.chat.completions.create.return_value = _stream(
            _chunk("Your site "), _chunk("is up."), _chunk(finish_reason="stop", usage=42)
        )

        reply, metadata = await service.generate_reply("Is my site down?", context)

        assert reply == "Your site is up."
        assert metadata.finish_reason == "stop"
        assert metadata.total_tokens == 42
        assert metadata.first_token_ms is not None
        kwargs = mock_client.chat.completions.create.call_args.kwargs
        assert kwargs["stream"] is True
        assert kwargs["model"] == "llama-3.3-70b-versatile"

    @pytest.mark.asyncio
    async def test_empty_reply(self, service, mock_client, context):
        mock_client.chat.completions.create.return_value = _stream(_chunk("  "))

        with pytest.raises(LLMEmptyReplyError):
            await service.generate_reply("hello", context)

    @pytest.mark.asyncio
    async def test_connection_error(self, service, mock_client, context):
        mock_client.chat.completions.create.side_effect = groq.APIConnectionError(
            request=httpx.Request("POST", GROQ_URL)
        )

        with pytest.raises(LLMConnectionError):
            await service.generate_reply("hello", context)

    @pytest.mark.asyncio
    async def test_rate_limit_error(self, service, mock_client, context):
        request = httpx.Request("POST", GROQ_URL)
        response = httpx.Response(429, headers={"retry-after": "7"}, request=request)
        mock_client.chat.completions.create.side_effect = groq.RateLimitError(
            "rate limited", response=response, body=None
        )

        with pytest.raises(LLMRateLimitError) as exc_info:
            await service.generate_reply("hello", context)
        assert exc_info.value.retry_after == 7.0

    def test_missing_key(self, settings_factory):
        service = GroqReplyService(settings=settings_factory(groq_api_key=None))
        with pytest.raises(LLMAuthenticationError):
            _ = service.client

    @pytest.mark.asyncio
    async def test_close(self, service, mock_client):
        await service.close()
        mock_client.close.assert_awaited_once()
        assert service._client is None


def _has_groq_key() -> bool:
    return bool(os.environ.get("GROQ_API_KEY"))


@pytest.mark.skipif(not _has_groq_key(), reason="GROQ_API_KEY not set")
class TestGroqIntegration:
    """Integration tests for Groq API (env-gated)."""

    @pytest.mark.asyncio
    async def test_generate_reply(self, settings_factory, context):
        service = GroqReplyService(
            settings=settings_factory(groq_api_key=os.environ["GROQ_API_KEY"]), max_tokens=32
        )
        reply, metadata = await service.generate_reply("What do you offer?", context)

        assert reply
        assert metadata.total_ms is not None
        await service.close()

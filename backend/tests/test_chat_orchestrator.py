"""
Unit Tests: Chat Orchestrator
=============================

Tests for a single chat turn covering:
1. Successful replies and metadata
2. Prompt assembly (system prompt, history window)
3. Degraded replies on model failure
4. Streaming
"""

from unittest.mock import AsyncMock, Mock

import pytest

from app.core.exceptions import UpstreamTimeoutException
from app.models.conversation import MessageRole
from app.services.chat_orchestrator import APOLOGY_MESSAGE, ChatOrchestrator, suggestions_for
from app.services.model_client import Completion, ModelClient


@pytest.fixture
def mock_model_client():
    client = Mock(spec=ModelClient)
    client.complete = AsyncMock(return_value=Completion(
        content="Consider SAP MM for procurement.", model="llama3-70b-8192", total_tokens=120, latency_ms=35
    ))
    return client


@pytest.fixture
def orchestrator(memory, mock_model_client, prompt_builder):
    return ChatOrchestrator(memory, mock_model_client, prompt_builder, history_window=4)


class TestHandle:

    @pytest.mark.asyncio
    async def test_successful_turn(self, orchestrator, memory):
        result = await orchestrator.handle("s1", "How should we handle procurement?", "sap_consultant")

        assert result.content == "Consider SAP MM for procurement."
        assert result.session_id == "s1"
        assert result.metadata == {
            "persona": "sap_consultant",
            "model": "llama3-70b-8192",
            "tokens_used": 120,
            "response_time_ms": 35,
            "context_type": "general",
        }
        assert result.suggestions == suggestions_for("sap_consultant")

        messages = memory.history("s1")
        assert [m.role for m in messages] == [MessageRole.USER, MessageRole.ASSISTANT]
        assert memory.get("s1").persona == "sap_consultant"

    @pytest.mark.asyncio
    async def test_prompt_contains_system_history_and_user(self, orchestrator, mock_model_client):
        await orchestrator.handle("s1", "First question", "general")
        await orchestrator.handle("s1", "Second question", "general")

        sent = mock_model_client.complete.call_args.args[0]
        assert sent[0]["role"] == "system"
        assert "CONVERSATION CONTEXT:" in sent[0]["content"]
        assert [m["content"] for m in sent[1:]] == [
            "First question",
            "Consider SAP MM for procurement.",
            "Second question",
        ]

    @pytest.mark.asyncio
    async def test_history_window_is_applied(self, orchestrator, mock_model_client):
        for index in range(4):
            await orchestrator.handle("s1", f"question {index}")

        sent = mock_model_client.complete.call_args.args[0]
        # system + last 4 history messages + current user message
        assert len(sent) == 6
        assert sent[-1]["content"] == "question 3"

    @pytest.mark.asyncio
    async def test_analysis_type_from_context(self, orchestrator, mock_model_client):
        result = await orchestrator.handle("s1", "Review my requirements", context={"type": "gap_analysis"})

        assert result.metadata["context_type"] == "gap_analysis"
        system_prompt = mock_model_client.complete.call_args.args[0][0]["content"]
        assert "gap analysis" in system_prompt.lower()

    @pytest.mark.asyncio
    async def test_persona_change_updates_session(self, orchestrator, memory):
        await orchestrator.handle("s1", "hello", "general")
        await orchestrator.handle("s1", "hello again", "oracle_specialist")

        assert memory.get("s1").persona == "oracle_specialist"

    @pytest.mark.asyncio
    async def test_model_failure_returns_apology(self, orchestrator, mock_model_client, memory):
        mock_model_client.complete.side_effect = UpstreamTimeoutException(model="llama3-70b-8192", timeout_seconds=30)

        result = await orchestrator.handle("s1", "Will this time out?")

        assert result.content == APOLOGY_MESSAGE
        assert result.metadata["error"] is True
        assert result.suggestions == []
        # the user message stays recorded, no assistant reply is stored
        assert [m.role for m in memory.history("s1")] == [MessageRole.USER]

    @pytest.mark.asyncio
    async def test_real_model_client_round_trip(self, memory, prompt_builder, model_client_factory):
        orchestrator = ChatOrchestrator(memory, model_client_factory("Fake reply"), prompt_builder)

        result = await orchestrator.handle("s2", "Hi EVA")

        assert result.content == "Fake reply"
        assert result.metadata["model"] == "mock-model"


class TestStream:

    @pytest.mark.asyncio
    async def test_stream_stores_full_reply(self, memory, prompt_builder, model_client_factory):
        orchestrator = ChatOrchestrator(memory, model_client_factory("Streamed answer"), prompt_builder)

        chunks = [chunk async for chunk in orchestrator.stream("s1", "Stream please")]

        assert "".join(chunks) == "Streamed answer"
        assert [m.content for m in memory.history("s1")] == ["Stream please", "Streamed answer"]

    @pytest.mark.asyncio
    async def test_stream_failure_yields_apology(self, memory, prompt_builder):
        async def failing_stream(*args, **kwargs):
            raise UpstreamTimeoutException(model="m", timeout_seconds=1)
            yield  # pragma: no cover

        client = Mock(spec=ModelClient)
        client.stream = failing_stream
        orchestrator = ChatOrchestrator(memory, client, prompt_builder)

        chunks = [chunk async for chunk in orchestrator.stream("s1", "Stream please")]

        assert chunks == [APOLOGY_MESSAGE]
        assert len(memory.history("s1")) == 1

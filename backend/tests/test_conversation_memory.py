"""
Unit Tests: Conversation Memory
===============================

Tests for the ConversationMemory store covering:
1. Session creation and message appends
2. History trimming and message counting
3. Unknown-session behaviour of reads
4. Issue resolution and session records
5. Expired session sweeps
6. Export snapshots
"""

import asyncio
from datetime import timedelta
from unittest.mock import Mock

import pytest

from app.models.conversation import ImplementationPhase, IssueStatus, MessageRole, utcnow
from app.services.context_extractor import ContextExtractor
from app.services.context_summarizer import NO_CONTEXT_AVAILABLE
from app.services.conversation_memory import ConversationMemory


class TestSessionLifecycle:
    """Creation, appends and clearing"""

    @pytest.mark.asyncio
    async def test_ensure_creates_session_with_default_persona(self, memory):
        session = await memory.ensure("s1")

        assert session.id == "s1"
        assert session.persona == "general"
        assert session.messages == []
        assert session.context.implementation_phase == ImplementationPhase.DISCOVERY
        assert memory.session_count() == 1

    @pytest.mark.asyncio
    async def test_ensure_keeps_existing_persona(self, memory):
        await memory.ensure("s1", "sap_consultant")
        session = await memory.ensure("s1", "erp_analyst")

        assert session.persona == "sap_consultant"

    @pytest.mark.asyncio
    async def test_append_creates_session_and_records_metadata(self, memory):
        message = await memory.append_message("new", "Hello there")

        session = memory.get("new")
        assert session is not None
        assert session.messages == [message]
        assert message.role == MessageRole.USER
        assert message.metadata == {"persona": "general", "phase": "discovery"}
        assert session.metadata.message_count == 1
        assert session.metadata.last_activity == message.timestamp

    @pytest.mark.asyncio
    async def test_message_ids_are_unique(self, memory):
        first = await memory.append_message("s1", "one")
        second = await memory.append_message("s1", "two")

        assert first.id != second.id
        assert first.id.startswith("msg_")

    @pytest.mark.asyncio
    async def test_clear_removes_session(self, memory):
        await memory.append_message("s1", "Hello")

        assert await memory.clear("s1") is True
        assert memory.get("s1") is None
        assert memory.history("s1") == []

    @pytest.mark.asyncio
    async def test_clear_unknown_session(self, memory):
        assert await memory.clear("missing") is False

    @pytest.mark.asyncio
    async def test_update_persona(self, memory):
        await memory.ensure("s1")

        assert await memory.update_persona("s1", "dynamics_expert") is True
        assert memory.get("s1").persona == "dynamics_expert"
        assert await memory.update_persona("missing", "dynamics_expert") is False


class TestHistoryTrimming:
    """History window and message counter"""

    @pytest.mark.asyncio
    async def test_history_is_trimmed_to_max_length(self):
        memory = ConversationMemory(max_history_length=3)
        for index in range(5):
            await memory.append_message("s1", f"message {index}")

        session = memory.get("s1")
        assert [m.content for m in session.messages] == ["message 2", "message 3", "message 4"]
        # the counter tracks every append, not the retained window
        assert session.metadata.message_count == 5

    @pytest.mark.asyncio
    async def test_history_limit_returns_latest_in_order(self, memory):
        for index in range(4):
            await memory.append_message("s1", f"m{index}")

        assert [m.content for m in memory.history("s1", limit=2)] == ["m2", "m3"]
        assert len(memory.history("s1")) == 4

    def test_rejects_non_positive_history_length(self):
        with pytest.raises(ValueError):
            ConversationMemory(max_history_length=0)


class TestUnknownSessions:
    """Read-only queries never raise for unknown ids"""

    def test_reads_on_unknown_session(self, memory):
        assert memory.get("nope") is None
        assert memory.history("nope") == []
        assert memory.summary("nope") is None
        assert memory.stats("nope") is None
        assert memory.export_session("nope") is None
        assert memory.context_summary("nope") == NO_CONTEXT_AVAILABLE

    @pytest.mark.asyncio
    async def test_record_adders_on_unknown_session(self, memory):
        assert await memory.add_analysis_result("nope", "gap_analysis", {}) is None
        assert await memory.add_generated_artifact("nope", "code:abap", {}) is None
        assert await memory.resolve_issue("nope", "msg_1") is False
        assert memory.session_count() == 0


class TestContextIntegration:
    """Extractor wiring and issue resolution"""

    @pytest.mark.asyncio
    async def test_append_runs_extractor(self):
        extractor = Mock(spec=ContextExtractor)
        memory = ConversationMemory(extractor=extractor)

        message = await memory.append_message("s1", "anything")

        extractor.update.assert_called_once_with(memory.get("s1"), message)

    @pytest.mark.asyncio
    async def test_phase_follows_latest_message(self, memory):
        await memory.append_message("s1", "Let's design the architecture")
        assert memory.get("s1").context.implementation_phase == ImplementationPhase.DESIGN

        await memory.append_message("s1", "Now let's test and validate")

        assert memory.get("s1").context.implementation_phase == ImplementationPhase.TESTING
        assert memory.stats("s1")["current_phase"] == "testing"

    @pytest.mark.asyncio
    async def test_resolve_issue(self, memory):
        message = await memory.append_message("s1", "We have a problem with data migration.")

        assert await memory.resolve_issue("s1", message.id) is True

        issue = memory.get("s1").context.open_issues[0]
        assert issue.status == IssueStatus.RESOLVED
        assert issue.resolved_at is not None
        assert await memory.resolve_issue("s1", "msg_unknown") is False

    @pytest.mark.asyncio
    async def test_analysis_and_artifact_records(self, memory):
        await memory.ensure("s1")

        analysis = await memory.add_analysis_result("s1", "gap_analysis", {"content": "gaps"})
        artifact = await memory.add_generated_artifact("s1", "code:abap", {"code": "WRITE 'x'."})

        metadata = memory.get("s1").metadata
        assert metadata.analysis_results == [analysis]
        assert metadata.generated_artifacts == [artifact]
        assert analysis.id.startswith("analysis_")
        assert artifact.id.startswith("artifact_")

    @pytest.mark.asyncio
    async def test_stats(self, memory):
        await memory.append_message("s1", "We need a business requirement for invoicing.")
        await memory.append_message("s1", "Sure.", MessageRole.ASSISTANT)

        stats = memory.stats("s1")
        assert stats["total_messages"] == 2
        assert stats["user_messages"] == 1
        assert stats["assistant_messages"] == 1
        assert stats["business_requirements"] == 1
        assert stats["current_phase"] == "requirements"


class TestSweep:
    """Expiry sweep"""

    @pytest.mark.asyncio
    async def test_sweep_removes_only_idle_sessions(self):
        memory = ConversationMemory(session_timeout=timedelta(hours=24))
        await memory.append_message("old", "hello")
        await memory.append_message("fresh", "hello")
        memory.get("old").metadata.last_activity = utcnow() - timedelta(hours=25)

        removed = await memory.sweep_expired()

        assert removed == 1
        assert memory.get("old") is None
        assert memory.get("fresh") is not None

    @pytest.mark.asyncio
    async def test_sweep_keeps_session_exactly_at_timeout(self):
        memory = ConversationMemory(session_timeout=timedelta(hours=24))
        await memory.append_message("edge", "hello")
        last_activity = memory.get("edge").metadata.last_activity

        assert await memory.sweep_expired(now=last_activity + timedelta(hours=24)) == 0
        assert await memory.sweep_expired(now=last_activity + timedelta(hours=24, seconds=1)) == 1

    @pytest.mark.asyncio
    async def test_cleanup_task_lifecycle(self, memory):
        task = memory.start_cleanup(interval_seconds=3600)
        assert task.running

        await memory.shutdown()

        assert not task.running
        assert memory.session_count() == 0


class TestConcurrencyAndExport:

    @pytest.mark.asyncio
    async def test_concurrent_appends_are_all_counted(self, memory):
        await asyncio.gather(*(memory.append_message("s1", f"m{i}") for i in range(20)))

        session = memory.get("s1")
        assert session.metadata.message_count == 20
        assert len(session.messages) == 20

    @pytest.mark.asyncio
    async def test_export_is_a_deep_copy(self, memory):
        await memory.append_message("s1", "We must support multi-currency business requirement.")

        exported = memory.export_session("s1")
        exported.session.context.business_requirements.append("tampered")

        assert "tampered" not in memory.get("s1").context.business_requirements
        assert exported.session.id == "s1"

    @pytest.mark.asyncio
    async def test_summary_snapshot(self, memory):
        for index in range(12):
            await memory.append_message("s1", f"m{index}")

        snapshot = memory.summary("s1")
        assert snapshot.id == "s1"
        assert [m.content for m in snapshot.recent_messages] == [f"m{i}" for i in range(2, 12)]

"""
Conversation Memory Module

In-process session store for chat conversations. Appends messages, keeps the
derived context current through a pluggable extractor and sweeps idle
sessions on a schedule. State is lost on restart.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Dict, List, Optional

from app.models.conversation import (
    ConversationMessage,
    ConversationSession,
    IssueStatus,
    MessageRole,
    SessionExport,
    SessionRecord,
    SessionSnapshot,
    generate_id,
    utcnow,
)
from app.services.context_extractor import ContextExtractor, KeywordContextExtractor
from app.services.context_summarizer import NO_CONTEXT_AVAILABLE, summarize_session
from app.services.maintenance import PeriodicTask

logger = logging.getLogger(__name__)

DEFAULT_PERSONA = "general"
SNAPSHOT_MESSAGE_COUNT = 10


class ConversationMemory:
    """
    Session store keyed by session id.

    Mutations of a session run under that session's ``asyncio.Lock``; reads
    are synchronous and never raise for unknown ids.
    """

    def __init__(
        self,
        max_history_length: int = 50,
        session_timeout: timedelta = timedelta(hours=24),
        extractor: Optional[ContextExtractor] = None,
    ):
        """
        Initialize the store.

        Args:
            max_history_length: Messages kept per session; older ones are trimmed
            session_timeout: Idle time after which a session is swept
            extractor: Context extractor run on every appended message
        """
        if max_history_length < 1:
            raise ValueError("max_history_length must be at least 1")

        self.max_history_length = max_history_length
        self.session_timeout = session_timeout
        self.extractor = extractor or KeywordContextExtractor()
        self._sessions: Dict[str, ConversationSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._cleanup_task: Optional[PeriodicTask] = None

    # Lifecycle

    def start_cleanup(self, interval_seconds: float = 3600) -> PeriodicTask:
        """Schedule ``sweep_expired`` on a fixed interval"""
        if self._cleanup_task is None:
            self._cleanup_task = PeriodicTask("conversation-sweep", self.sweep_expired, interval_seconds)
        self._cleanup_task.start()
        return self._cleanup_task

    async def shutdown(self) -> None:
        """Stop the sweeper and drop all sessions"""
        if self._cleanup_task is not None:
            await self._cleanup_task.stop()
            self._cleanup_task = None
        self._sessions.clear()
        self._locks.clear()
        logger.info("Conversation memory shut down")

    @asynccontextmanager
    async def _locked(self, session_id: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            yield

    def _forget(self, session_id: str) -> bool:
        removed = self._sessions.pop(session_id, None) is not None
        lock = self._locks.get(session_id)
        if lock is not None and not lock.locked():
            del self._locks[session_id]
        return removed

    # Mutators

    def _ensure_unlocked(self, session_id: str, persona: Optional[str]) -> ConversationSession:
        session = self._sessions.get(session_id)
        if session is None:
            session = ConversationSession(id=session_id, persona=persona or DEFAULT_PERSONA)
            self._sessions[session_id] = session
            logger.info(f"Created conversation session {session_id} (persona={session.persona})")
        return session

    async def ensure(self, session_id: str, persona: Optional[str] = None) -> ConversationSession:
        """
        Return the session, creating it with the given or default persona.

        Args:
            session_id: Opaque session identifier
            persona: Persona for a newly created session

        Returns:
            The live session object
        """
        async with self._locked(session_id):
            return self._ensure_unlocked(session_id, persona)

    async def append_message(
        self,
        session_id: str,
        text: str,
        role: MessageRole = MessageRole.USER,
    ) -> ConversationMessage:
        """
        Append a message, trim history and update the derived context.

        Args:
            session_id: Target session, created if unseen
            text: Message content
            role: Message author

        Returns:
            The stored message
        """
        async with self._locked(session_id):
            session = self._ensure_unlocked(session_id, None)
            message = ConversationMessage(
                role=MessageRole(role),
                content=text,
                metadata={
                    "persona": session.persona,
                    "phase": session.context.implementation_phase.value,
                },
            )

            session.messages.append(message)
            session.metadata.message_count += 1
            session.metadata.last_activity = message.timestamp

            overflow = len(session.messages) - self.max_history_length
            if overflow > 0:
                del session.messages[:overflow]

            self.extractor.update(session, message)
            return message

    async def clear(self, session_id: str) -> bool:
        """Remove a session; returns whether one existed"""
        async with self._locked(session_id):
            removed = self._sessions.pop(session_id, None) is not None
        self._forget(session_id)
        if removed:
            logger.info(f"Cleared conversation session {session_id}")
        return removed

    async def sweep_expired(self, now: Optional[datetime] = None) -> int:
        """
        Remove sessions idle for longer than the session timeout.

        Args:
            now: Reference time, defaults to the current UTC time

        Returns:
            Number of sessions removed
        """
        now = now or utcnow()
        candidates = [
            sid for sid, session in self._sessions.items()
            if now - session.metadata.last_activity > self.session_timeout
        ]

        removed = 0
        for session_id in candidates:
            async with self._locked(session_id):
                session = self._sessions.get(session_id)
                # re-check: the session may have been touched while waiting
                if session is None or now - session.metadata.last_activity <= self.session_timeout:
                    continue
                del self._sessions[session_id]
                removed += 1
            self._forget(session_id)

        if removed:
            logger.info(f"Swept {removed} expired conversation sessions")
        return removed

    async def update_persona(self, session_id: str, persona: str) -> bool:
        async with self._locked(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                return False
            session.persona = persona
            session.metadata.last_activity = utcnow()
            return True

    async def resolve_issue(self, session_id: str, message_id: str) -> bool:
        """
        Mark the issue raised by ``message_id`` as resolved.

        Returns:
            False when the session or the issue is unknown
        """
        async with self._locked(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                return False
            for issue in session.context.open_issues:
                if issue.message_id == message_id:
                    issue.status = IssueStatus.RESOLVED
                    issue.resolved_at = utcnow()
                    return True
            return False

    async def add_analysis_result(self, session_id: str, analysis_type: str, result: Any) -> Optional[SessionRecord]:
        async with self._locked(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                return None
            record = SessionRecord(id=generate_id("analysis"), type=analysis_type, result=result)
            session.metadata.analysis_results.append(record)
            return record

    async def add_generated_artifact(self, session_id: str, artifact_type: str, artifact: Any) -> Optional[SessionRecord]:
        async with self._locked(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                return None
            record = SessionRecord(id=generate_id("artifact"), type=artifact_type, result=artifact)
            session.metadata.generated_artifacts.append(record)
            return record

    # Reads

    def get(self, session_id: str) -> Optional[ConversationSession]:
        return self._sessions.get(session_id)

    def history(self, session_id: str, limit: Optional[int] = None) -> List[ConversationMessage]:
        """Most recent ``limit`` messages (all when unset) in original order"""
        session = self._sessions.get(session_id)
        if session is None:
            return []
        messages = session.messages
        if limit:
            messages = messages[-limit:]
        return list(messages)

    def summary(self, session_id: str) -> Optional[SessionSnapshot]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return SessionSnapshot(
            id=session.id,
            persona=session.persona,
            context=session.context.model_copy(deep=True),
            metadata=session.metadata.model_copy(deep=True),
            recent_messages=list(session.messages[-SNAPSHOT_MESSAGE_COUNT:]),
        )

    def context_summary(self, session_id: str) -> str:
        session = self._sessions.get(session_id)
        if session is None:
            return NO_CONTEXT_AVAILABLE
        return summarize_session(session)

    def export_session(self, session_id: str) -> Optional[SessionExport]:
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return SessionExport(session=session.model_copy(deep=True))

    def stats(self, session_id: str) -> Optional[Dict[str, Any]]:
        session = self._sessions.get(session_id)
        if session is None:
            return None

        context = session.context
        return {
            "session_id": session_id,
            "persona": session.persona,
            "total_messages": session.metadata.message_count,
            "user_messages": sum(1 for m in session.messages if m.role == MessageRole.USER),
            "assistant_messages": sum(1 for m in session.messages if m.role == MessageRole.ASSISTANT),
            "business_requirements": len(context.business_requirements),
            "technical_specs": len(context.technical_specs),
            "decisions": len(context.decisions),
            "open_issues": sum(1 for i in context.open_issues if i.status == IssueStatus.OPEN),
            "resolved_issues": sum(1 for i in context.open_issues if i.status == IssueStatus.RESOLVED),
            "analysis_results": len(session.metadata.analysis_results),
            "generated_artifacts": len(session.metadata.generated_artifacts),
            "session_duration_seconds": (utcnow() - session.metadata.created_at).total_seconds(),
            "current_phase": context.implementation_phase.value,
        }

    def session_count(self) -> int:
        return len(self._sessions)

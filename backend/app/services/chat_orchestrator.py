"""
Chat orchestration

Ties the conversation memory, prompt builder and model client together for a
single chat turn. Model-side failures degrade into an apology reply instead of
propagating to the caller.
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from app.models.conversation import ConversationMessage, MessageRole
from app.schemas.chat import ChatResult
from app.services.conversation_memory import ConversationMemory
from app.services.model_client import ModelClient
from app.utils.prompts import PromptBuilder

logger = logging.getLogger(__name__)

APOLOGY_MESSAGE = "I apologize, but I encountered an error processing your request. Please try again."

PERSONA_SUGGESTIONS: Dict[str, List[str]] = {
    "sap_consultant": [
        "Explore SAP modules integration",
        "Review technical specifications",
        "Consider customization options",
        "Plan implementation timeline",
    ],
    "erp_analyst": [
        "Analyze business requirements",
        "Review current processes",
        "Identify improvement areas",
        "Estimate implementation costs",
    ],
}


def suggestions_for(persona: str) -> List[str]:
    return list(PERSONA_SUGGESTIONS.get(persona, []))


class ChatOrchestrator:
    """Runs one chat turn: history, append, prompt, model call, reply"""

    def __init__(
        self,
        memory: ConversationMemory,
        model_client: ModelClient,
        prompt_builder: PromptBuilder,
        history_window: int = 20,
        timeout_seconds: float = 30,
    ):
        self.memory = memory
        self.model_client = model_client
        self.prompt_builder = prompt_builder
        self.history_window = history_window
        self.timeout_seconds = timeout_seconds

    async def handle(
        self,
        session_id: str,
        message: str,
        persona: str = "general",
        context: Optional[Dict[str, Any]] = None,
    ) -> ChatResult:
        """
        Process a user message and return the assistant reply.

        Args:
            session_id: Conversation to append to, created if unseen
            message: Validated user message
            persona: Prompting profile for this turn
            context: Request context; ``context["type"]`` selects an analysis template

        Returns:
            ChatResult; on model failure ``metadata["error"]`` is True and the
            user message stays recorded
        """
        context = context or {}
        history = await self._record_user_message(session_id, message, persona)

        try:
            messages = self._build_messages(session_id, persona, context, history, message)
            completion = await self.model_client.complete(messages, timeout=self.timeout_seconds)
        except Exception as e:
            logger.error(f"Chat turn failed for session {session_id}: {type(e).__name__}: {e}")
            return self._apology(session_id, e)

        await self.memory.append_message(session_id, completion.content, MessageRole.ASSISTANT)

        return ChatResult(
            content=completion.content,
            metadata={
                "persona": persona,
                "model": completion.model,
                "tokens_used": completion.total_tokens,
                "response_time_ms": completion.latency_ms,
                "context_type": context.get("type", "general"),
            },
            suggestions=suggestions_for(persona),
            session_id=session_id,
        )

    async def stream(
        self,
        session_id: str,
        message: str,
        persona: str = "general",
        context: Optional[Dict[str, Any]] = None,
    ) -> AsyncIterator[str]:
        """Streaming variant of ``handle``; the reply is stored once complete"""
        context = context or {}
        history = await self._record_user_message(session_id, message, persona)

        chunks: List[str] = []
        try:
            messages = self._build_messages(session_id, persona, context, history, message)
            async for chunk in self.model_client.stream(messages, timeout=self.timeout_seconds):
                chunks.append(chunk)
                yield chunk
        except Exception as e:
            logger.error(f"Streaming chat failed for session {session_id}: {type(e).__name__}: {e}")
            yield APOLOGY_MESSAGE
            return

        reply = "".join(chunks)
        if not reply.strip():
            logger.error(f"Streaming chat for session {session_id} produced no content")
            yield APOLOGY_MESSAGE
            return

        await self.memory.append_message(session_id, reply, MessageRole.ASSISTANT)

    async def _record_user_message(self, session_id: str, message: str, persona: str) -> List[ConversationMessage]:
        history = self.memory.history(session_id)

        session = await self.memory.ensure(session_id, persona)
        if persona and session.persona != persona:
            await self.memory.update_persona(session_id, persona)

        await self.memory.append_message(session_id, message, MessageRole.USER)
        return history

    def _build_messages(
        self,
        session_id: str,
        persona: str,
        context: Dict[str, Any],
        history: List[ConversationMessage],
        message: str,
    ) -> List[Dict[str, str]]:
        session = self.memory.get(session_id)
        phase = session.context.implementation_phase.value if session else None

        system_prompt = self.prompt_builder.build_system_prompt(
            persona=persona,
            phase=phase,
            analysis_type=context.get("type"),
            conversation_context=self.memory.context_summary(session_id),
        )

        recent = history[-self.history_window:] if self.history_window else []
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": m.role.value, "content": m.content} for m in recent)
        messages.append({"role": "user", "content": message})
        return messages

    @staticmethod
    def _apology(session_id: str, error: Exception) -> ChatResult:
        return ChatResult(
            content=APOLOGY_MESSAGE,
            metadata={"error": True, "error_message": str(error)},
            suggestions=[],
            session_id=session_id,
        )

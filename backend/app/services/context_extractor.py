"""
Context extraction for conversation memory
Keyword heuristics that derive phase, requirements, stakeholders, decisions and
issues from free-text messages
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Iterable, List, Optional, Tuple

from app.models.conversation import (
    ConversationMessage,
    ConversationSession,
    DecisionRecord,
    ImplementationPhase,
    IssueRecord,
)

logger = logging.getLogger(__name__)

_SENTENCE_SPLIT = re.compile(r"[.!?]+")

# Checked in order; a later match overwrites an earlier one.
PHASE_KEYWORDS: List[Tuple[ImplementationPhase, Tuple[str, ...]]] = [
    (ImplementationPhase.REQUIREMENTS, ("requirement", "analyze")),
    (ImplementationPhase.DESIGN, ("design", "architect")),
    (ImplementationPhase.IMPLEMENTATION, ("implement", "configure")),
    (ImplementationPhase.TESTING, ("test", "validate")),
    (ImplementationPhase.DEPLOYMENT, ("deploy", "go-live")),
]

REQUIREMENT_TERMS = ("requirement", "need", "must")
TECHNICAL_TRIGGERS = ("technical", "system", "integration")
TECHNICAL_TERMS = ("system", "technical", "integration")
STAKEHOLDER_TRIGGERS = ("stakeholder", "team", "user")
STAKEHOLDER_TERMS = ("team", "user", "stakeholder")
DECISION_TERMS = ("decide", "choose", "select")
ISSUE_TERMS = ("issue", "problem", "challenge")


def _contains_any(text: str, terms: Iterable[str]) -> bool:
    return any(term in text for term in terms)


def first_sentence_with(content: str, terms: Iterable[str]) -> Optional[str]:
    """Return the first sentence of ``content`` containing any of ``terms``, stripped"""
    terms = tuple(terms)
    for sentence in _SENTENCE_SPLIT.split(content):
        if _contains_any(sentence.lower(), terms):
            return sentence.strip() or None
    return None


def detect_phase(lowered: str) -> Optional[ImplementationPhase]:
    """Phase implied by the message; the last matching check wins"""
    detected = None
    for phase, keywords in PHASE_KEYWORDS:
        if _contains_any(lowered, keywords):
            detected = phase
    return detected


class ContextExtractor(ABC):
    """Updates a session's derived context from a newly appended message"""

    @abstractmethod
    def update(self, session: ConversationSession, message: ConversationMessage) -> None:
        pass


class KeywordContextExtractor(ContextExtractor):
    """
    Substring heuristics over the lowercased message text.

    All checks run for every message, so one message can move the phase and
    add a requirement, a decision and an issue at once. Failures are logged
    and leave the context untouched.
    """

    def update(self, session: ConversationSession, message: ConversationMessage) -> None:
        try:
            self._apply(session, message)
        except Exception as e:
            logger.warning(f"Context extraction failed for session {session.id}: {e}")

    def _apply(self, session: ConversationSession, message: ConversationMessage) -> None:
        content = message.content
        lowered = content.lower()
        context = session.context

        phase = detect_phase(lowered)
        if phase is not None:
            context.implementation_phase = phase

        if "business" in lowered and ("requirement" in lowered or "process" in lowered):
            self._add_unique(context.business_requirements, first_sentence_with(content, REQUIREMENT_TERMS))

        if _contains_any(lowered, TECHNICAL_TRIGGERS):
            self._add_unique(context.technical_specs, first_sentence_with(content, TECHNICAL_TERMS))

        if _contains_any(lowered, STAKEHOLDER_TRIGGERS):
            self._add_unique(context.stakeholders, first_sentence_with(content, STAKEHOLDER_TERMS))

        if _contains_any(lowered, DECISION_TERMS):
            decision = first_sentence_with(content, DECISION_TERMS)
            if decision:
                context.decisions.append(
                    DecisionRecord(decision=decision, timestamp=message.timestamp, message_id=message.id)
                )

        if _contains_any(lowered, ISSUE_TERMS):
            issue = first_sentence_with(content, ISSUE_TERMS)
            if issue:
                context.open_issues.append(
                    IssueRecord(issue=issue, timestamp=message.timestamp, message_id=message.id)
                )

    @staticmethod
    def _add_unique(target: List[str], value: Optional[str]) -> None:
        # exact string match only
        if value and value not in target:
            target.append(value)

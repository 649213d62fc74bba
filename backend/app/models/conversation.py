"""
Conversation memory models
In-memory session, message and derived-context structures
"""

import secrets
import string
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

_BASE36 = string.digits + string.ascii_lowercase


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_id(prefix: str, suffix_length: int = 9) -> str:
    """Time-based identifier with a random base-36 suffix, e.g. ``msg_1700000000000_k3j9x0a1b``"""
    suffix = "".join(secrets.choice(_BASE36) for _ in range(suffix_length))
    return f"{prefix}_{int(time.time() * 1000)}_{suffix}"


class MessageRole(str, Enum):
    """Author of a conversation message"""
    USER = "user"
    ASSISTANT = "assistant"


class ImplementationPhase(str, Enum):
    """Coarse conversation stage inferred from message keywords"""
    DISCOVERY = "discovery"
    REQUIREMENTS = "requirements"
    DESIGN = "design"
    IMPLEMENTATION = "implementation"
    TESTING = "testing"
    DEPLOYMENT = "deployment"


class IssueStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class ConversationMessage(BaseModel):
    """Single message; immutable once written"""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: generate_id("msg"))
    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Persona and phase at creation time")


class DecisionRecord(BaseModel):
    decision: str
    timestamp: datetime = Field(default_factory=utcnow)
    message_id: str


class IssueRecord(BaseModel):
    issue: str
    timestamp: datetime = Field(default_factory=utcnow)
    status: IssueStatus = IssueStatus.OPEN
    message_id: str
    resolved_at: Optional[datetime] = None


class SessionRecord(BaseModel):
    """Analysis result or generated artifact attached to a session"""
    id: str
    type: str
    result: Any
    timestamp: datetime = Field(default_factory=utcnow)


class ConversationContext(BaseModel):
    """Facts derived from the conversation by the context extractor"""
    current_project: Optional[str] = None
    business_requirements: List[str] = Field(default_factory=list)
    technical_specs: List[str] = Field(default_factory=list)
    implementation_phase: ImplementationPhase = ImplementationPhase.DISCOVERY
    stakeholders: List[str] = Field(default_factory=list)
    decisions: List[DecisionRecord] = Field(default_factory=list)
    open_issues: List[IssueRecord] = Field(default_factory=list)


class SessionMetadata(BaseModel):
    created_at: datetime = Field(default_factory=utcnow)
    last_activity: datetime = Field(default_factory=utcnow)
    message_count: int = 0
    analysis_results: List[SessionRecord] = Field(default_factory=list)
    generated_artifacts: List[SessionRecord] = Field(default_factory=list)


class ConversationSession(BaseModel):
    """One conversation's full state: messages, derived context and metadata"""
    id: str
    persona: str = "general"
    messages: List[ConversationMessage] = Field(default_factory=list)
    context: ConversationContext = Field(default_factory=ConversationContext)
    metadata: SessionMetadata = Field(default_factory=SessionMetadata)


class SessionSnapshot(BaseModel):
    """Read-only view of a session with only its most recent messages"""
    id: str
    persona: str
    context: ConversationContext
    metadata: SessionMetadata
    recent_messages: List[ConversationMessage]


class SessionExport(BaseModel):
    exported_at: datetime = Field(default_factory=utcnow)
    session: ConversationSession

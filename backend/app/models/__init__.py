from .conversation import (
    ConversationContext,
    ConversationMessage,
    ConversationSession,
    DecisionRecord,
    ImplementationPhase,
    IssueRecord,
    IssueStatus,
    MessageRole,
    SessionExport,
    SessionMetadata,
    SessionRecord,
    SessionSnapshot,
    generate_id,
)

__all__ = [
    "ConversationContext",
    "ConversationMessage",
    "ConversationSession",
    "DecisionRecord",
    "ImplementationPhase",
    "IssueRecord",
    "IssueStatus",
    "MessageRole",
    "SessionExport",
    "SessionMetadata",
    "SessionRecord",
    "SessionSnapshot",
    "generate_id",
]

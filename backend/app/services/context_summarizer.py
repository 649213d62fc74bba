"""
Renders a session's derived context and recent messages into the text block
injected into the system prompt
"""

from typing import List

from app.models.conversation import ConversationSession, IssueStatus

NO_CONTEXT_AVAILABLE = "No previous context available."

MAX_REQUIREMENTS = 5
MAX_TECHNICAL_SPECS = 3
MAX_DECISIONS = 3
MAX_OPEN_ISSUES = 3
MAX_RECENT_MESSAGES = 5
MESSAGE_PREVIEW_CHARS = 200


def truncate(text: str, limit: int = MESSAGE_PREVIEW_CHARS) -> str:
    return text[:limit] + "..." if len(text) > limit else text


def _bullets(items: List[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def summarize_session(session: ConversationSession) -> str:
    """Fixed-template context summary for prompt injection"""
    context = session.context
    open_issues = [issue for issue in context.open_issues if issue.status == IssueStatus.OPEN]

    requirements = context.business_requirements[-MAX_REQUIREMENTS:]
    specs = context.technical_specs[-MAX_TECHNICAL_SPECS:]
    decisions = [
        f"{d.decision} ({d.timestamp.isoformat()})" for d in context.decisions[-MAX_DECISIONS:]
    ]
    issues = [
        f"{i.issue} ({i.timestamp.isoformat()})" for i in open_issues[-MAX_OPEN_ISSUES:]
    ]
    recent = "\n".join(
        f"{m.role.value}: {truncate(m.content)}" for m in session.messages[-MAX_RECENT_MESSAGES:]
    )

    return (
        "CONVERSATION CONTEXT:\n"
        f"- Current Persona: {session.persona}\n"
        f"- Implementation Phase: {context.implementation_phase.value}\n"
        f"- Total Messages: {session.metadata.message_count}\n"
        "\n"
        "BUSINESS REQUIREMENTS IDENTIFIED:\n"
        f"{_bullets(requirements)}\n"
        "\n"
        "TECHNICAL SPECIFICATIONS:\n"
        f"{_bullets(specs)}\n"
        "\n"
        "RECENT DECISIONS:\n"
        f"{_bullets(decisions)}\n"
        "\n"
        "OPEN ISSUES:\n"
        f"{_bullets(issues)}\n"
        "\n"
        "RECENT CONVERSATION:\n"
        f"{recent}\n"
    )

"""
Input validation helpers
Raise ValidationException before any conversation state is touched
"""

import re
from typing import Iterable, Optional

from app.core.exceptions import ValidationException

_SCRIPT_TAG = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_JS_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"on\w+\s*=", re.IGNORECASE)
SESSION_ID_PATTERN = re.compile(r"^(?!\.+$)[A-Za-z0-9_\-.:]{1,128}$")


def sanitize_input(value: str) -> str:
    """Strip script tags, ``javascript:`` schemes and inline event handlers"""
    value = _SCRIPT_TAG.sub("", value)
    value = _JS_SCHEME.sub("", value)
    value = _EVENT_HANDLER.sub("", value)
    return value.strip()


def validate_message(message: Optional[str], max_length: int = 10000) -> str:
    if message is None:
        raise ValidationException("Message is required", field="message")
    if not isinstance(message, str):
        raise ValidationException("Message must be a string", field="message", value=message)
    if len(message) > max_length:
        raise ValidationException(
            f"Message too long (max {max_length:,} characters)", field="message", value=message
        )
    sanitized = sanitize_input(message)
    if not sanitized:
        raise ValidationException("Message cannot be empty", field="message", value=message)
    return sanitized


def validate_session_id(session_id: Optional[str]) -> str:
    if not session_id:
        raise ValidationException("Session ID is required", field="session_id")
    if not SESSION_ID_PATTERN.fullmatch(session_id):
        raise ValidationException("Invalid session ID format", field="session_id", value=session_id)
    return session_id


def validate_choice(value: str, allowed: Iterable[str], field: str) -> str:
    allowed = list(allowed)
    if value not in allowed:
        raise ValidationException(
            f"Invalid {field}. Must be one of: {', '.join(allowed)}", field=field, value=value
        )
    return value

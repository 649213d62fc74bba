"""
Secure logging filter to prevent credential exposure in logs
"""

import re
import logging
from typing import List


class SensitiveDataFilter(logging.Filter):
    """
    Logging filter that masks provider keys, API keys and tokens in log records
    """

    SENSITIVE_PATTERNS: List[str] = [
        r'(api[_-]?key)["\']?\s*[:=]\s*["\']?[\w-]{10,}',
        r'(x-api-key)["\']?\s*[:=]\s*["\']?[\w-]{6,}',
        r'(token)["\']?\s*[:=]\s*["\']?[\w-]{10,}',
        r'(bearer\s+)[\w-]{10,}',
        r'(gsk_)[A-Za-z0-9]{20,}',  # Groq API key format
        r'(sk-)[\w-]{20,}',  # OpenAI API key format
    ]

    def __init__(self):
        super().__init__()
        self.compiled_patterns = [
            re.compile(pattern, re.IGNORECASE)
            for pattern in self.SENSITIVE_PATTERNS
        ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Mask sensitive values in the message, its args and exception text"""
        if record.msg:
            record.msg = self._sanitize_string(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    key: self._sanitize_string(value) if isinstance(value, str) else value
                    for key, value in record.args.items()
                }
            else:
                record.args = tuple(
                    self._sanitize_string(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        if record.exc_text:
            record.exc_text = self._sanitize_string(record.exc_text)

        return True

    def _sanitize_string(self, text: str) -> str:
        sanitized = text
        for pattern in self.compiled_patterns:
            sanitized = pattern.sub(r'\1***REDACTED***', sanitized)
        return sanitized


def setup_secure_logging() -> None:
    """
    Attach the sensitive data filter to the root handlers and to loggers
    that see configuration or provider traffic.

    Call during application startup, after logging.basicConfig.
    """
    sensitive_filter = SensitiveDataFilter()

    root_logger = logging.getLogger()
    for handler in root_logger.handlers:
        handler.addFilter(sensitive_filter)

    sensitive_loggers = [
        'app.core.config',
        'app.main',
        'app.core.llm_providers',
        'app.services.model_client',
        'uvicorn',
        'uvicorn.access',
        'uvicorn.error'
    ]

    for logger_name in sensitive_loggers:
        logging.getLogger(logger_name).addFilter(sensitive_filter)

    logging.getLogger(__name__).info("Secure logging filter configured")

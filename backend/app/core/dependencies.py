"""
Dependency injection for EVA ERP Assistant
Service instances live on ``app.state`` and are built in the application lifespan
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import APIKeyHeader

from app.core.config import Settings
from app.core.exceptions import AuthenticationException, ValidationException
from app.services.chat_orchestrator import ChatOrchestrator
from app.services.code_generator import CodeGenerator
from app.services.conversation_memory import ConversationMemory
from app.services.document_processor import DocumentProcessor
from app.services.erp_analyzer import ERPAnalyzer
from app.services.export_service import ExportService
from app.services.model_client import ModelClient
from app.utils.validators import validate_session_id

logger = logging.getLogger(__name__)

SESSION_HEADER = "X-Session-ID"
API_KEY_HEADER = "X-API-Key"

api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def _service(request: Request, name: str):
    service = getattr(request.app.state, name, None)
    if service is None:
        raise RuntimeError(f"Service '{name}' not initialized. Is the application lifespan running?")
    return service


def get_settings(request: Request) -> Settings:
    return _service(request, "settings")


def get_memory(request: Request) -> ConversationMemory:
    return _service(request, "memory")


def get_model_client(request: Request) -> ModelClient:
    return _service(request, "model_client")


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return _service(request, "orchestrator")


def get_analyzer(request: Request) -> ERPAnalyzer:
    return _service(request, "analyzer")


def get_code_generator(request: Request) -> CodeGenerator:
    return _service(request, "code_generator")


def get_document_processor(request: Request) -> DocumentProcessor:
    return _service(request, "document_processor")


def get_export_service(request: Request) -> ExportService:
    return _service(request, "export_service")


async def require_api_key(
    api_key: Optional[str] = Depends(api_key_header),
    settings: Settings = Depends(get_settings),
) -> Optional[str]:
    """
    API key gate. With REQUIRE_API_KEY a key must be sent; whenever a key is
    sent and VALID_API_KEYS is configured, it must be listed.
    """
    if not api_key:
        if settings.REQUIRE_API_KEY:
            raise AuthenticationException("API key required")
        return None
    if settings.VALID_API_KEYS and api_key not in settings.VALID_API_KEYS:
        logger.warning("Rejected request with invalid API key")
        raise AuthenticationException("Invalid API key")
    return api_key


def resolve_session_id(
    request: Request,
    body_session_id: Optional[str] = None,
    allow_generated: bool = True,
) -> str:
    """
    Session id from the request body, then the X-Session-ID header, then
    (when ``allow_generated``) the id assigned by the session middleware.

    Raises:
        ValidationException: No usable session id
    """
    session_id = body_session_id or request.headers.get(SESSION_HEADER)
    if not session_id and allow_generated:
        session_id = getattr(request.state, "session_id", None)
    if not session_id:
        raise ValidationException("Session ID is required", field="session_id")
    return validate_session_id(session_id)

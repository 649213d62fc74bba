"""
Chat API endpoints
Chat turns, streaming, history, session inspection, ERP analysis and code generation
"""

import json
import logging
from typing import Any, AsyncIterator, Dict, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from app.core.config import Settings
from app.core.dependencies import (
    get_analyzer,
    get_code_generator,
    get_memory,
    get_orchestrator,
    get_settings,
    resolve_session_id,
)
from app.core.exceptions import NotFoundException
from app.models.conversation import SessionSnapshot
from app.schemas.chat import (
    AnalysisRequest,
    AnalysisResponse,
    ChatRequest,
    ChatResponse,
    ClearResponse,
    CodeGenerationRequest,
    CodeGenerationResponse,
    HistoryItem,
    HistoryResponse,
    ResolveIssueRequest,
    ResolveIssueResponse,
)
from app.services.chat_orchestrator import ChatOrchestrator
from app.services.code_generator import CodeGenerator
from app.services.conversation_memory import ConversationMemory
from app.services.erp_analyzer import ERPAnalyzer
from app.utils.prompts import prompt_builder
from app.utils.validators import validate_choice, validate_message, validate_session_id

logger = logging.getLogger(__name__)
router = APIRouter()


def _validated_turn(request: Request, body: ChatRequest, settings: Settings) -> Dict[str, Any]:
    return {
        "session_id": resolve_session_id(request, body.session_id),
        "message": validate_message(body.message, settings.MAX_MESSAGE_LENGTH),
        "persona": validate_choice(body.persona, prompt_builder.persona_names(), "persona"),
        "context": body.context,
    }


@router.post("", response_model=ChatResponse)
async def chat(
    body: ChatRequest,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """Submit a message and receive the assistant reply"""
    turn = _validated_turn(request, body, settings)
    result = await orchestrator.handle(**turn)
    return ChatResponse(**result.model_dump())


@router.post("/stream")
async def chat_stream(
    body: ChatRequest,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_settings),
):
    """Submit a message and receive the reply as server-sent events"""
    turn = _validated_turn(request, body, settings)

    async def events() -> AsyncIterator[str]:
        async for chunk in orchestrator.stream(**turn):
            yield f"data: {json.dumps({'content': chunk})}\n\n"
        yield "data: [DONE]\n\n"

    return StreamingResponse(
        events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/history/{session_id}", response_model=HistoryResponse)
async def get_history(
    session_id: str,
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    memory: ConversationMemory = Depends(get_memory),
):
    """Messages of a session; unknown sessions yield an empty history"""
    validate_session_id(session_id)
    history = [
        HistoryItem(role=m.role.value, content=m.content, timestamp=m.timestamp)
        for m in memory.history(session_id, limit)
    ]
    return HistoryResponse(session_id=session_id, history=history, session_info=memory.stats(session_id))


@router.delete("/clear/{session_id}", response_model=ClearResponse)
async def clear_history(session_id: str, memory: ConversationMemory = Depends(get_memory)):
    validate_session_id(session_id)
    cleared = await memory.clear(session_id)
    logger.info(f"Clear requested for session {session_id} (existed={cleared})")
    return ClearResponse(
        session_id=session_id,
        cleared=cleared,
        message="Conversation history cleared" if cleared else "No conversation history for this session",
    )


@router.get("/session/{session_id}", response_model=SessionSnapshot)
async def get_session(session_id: str, memory: ConversationMemory = Depends(get_memory)):
    validate_session_id(session_id)
    snapshot = memory.summary(session_id)
    if snapshot is None:
        raise NotFoundException("Session not found", resource="session", identifier=session_id)
    return snapshot


@router.get("/stats/{session_id}")
async def get_stats(session_id: str, memory: ConversationMemory = Depends(get_memory)) -> Dict[str, Any]:
    validate_session_id(session_id)
    stats = memory.stats(session_id)
    if stats is None:
        raise NotFoundException("Session not found", resource="session", identifier=session_id)
    return {"success": True, "stats": stats}


@router.post("/issues/resolve", response_model=ResolveIssueResponse)
async def resolve_issue(body: ResolveIssueRequest, memory: ConversationMemory = Depends(get_memory)):
    """Mark the issue raised by ``message_id`` as resolved"""
    validate_session_id(body.session_id)
    resolved = await memory.resolve_issue(body.session_id, body.message_id)
    return ResolveIssueResponse(success=resolved, session_id=body.session_id, message_id=body.message_id)


@router.post("/analyze", response_model=AnalysisResponse)
async def analyze_requirements(
    body: AnalysisRequest,
    request: Request,
    analyzer: ERPAnalyzer = Depends(get_analyzer),
):
    """ERP requirements, gap or risk analysis, stored on the session"""
    session_id = resolve_session_id(request, body.session_id)
    return await analyzer.analyze(
        requirements=body.requirements,
        analysis_type=body.analysis_type,
        session_id=session_id,
        module=body.module,
        industry=body.industry,
        complexity=body.complexity,
    )


@router.post("/generate-code", response_model=CodeGenerationResponse)
async def generate_code(
    body: CodeGenerationRequest,
    request: Request,
    generator: CodeGenerator = Depends(get_code_generator),
):
    session_id = resolve_session_id(request, body.session_id)
    return await generator.generate(
        requirements=body.requirements,
        language=body.language,
        erp_system=body.erp_system,
        complexity=body.complexity,
        include_tests=body.include_tests,
        session_id=session_id,
    )

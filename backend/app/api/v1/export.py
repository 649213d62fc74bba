"""
Conversation export endpoints
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response

from app.core.dependencies import get_export_service, resolve_session_id
from app.schemas.export import ExportFormat, ExportRequest
from app.services.export_service import ExportService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/conversation/{export_format}")
async def export_conversation(
    export_format: ExportFormat,
    request: Request,
    body: Optional[ExportRequest] = None,
    export_service: ExportService = Depends(get_export_service),
):
    """Download a conversation as JSON, PDF or Word"""
    body = body or ExportRequest()
    # A freshly generated session can never have history, so require an explicit id
    session_id = resolve_session_id(request, body.session_id, allow_generated=False)

    export_file = export_service.export(
        session_id,
        export_format,
        title=body.title,
        include_metadata=body.include_metadata,
        include_analysis=body.include_analysis,
    )
    return Response(
        content=export_file.content,
        media_type=export_file.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export_file.filename}"'},
    )

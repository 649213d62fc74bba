"""
Document upload endpoints
Single and batch uploads with analysis, content lookup, history and deletion
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from app.core.dependencies import get_document_processor, resolve_session_id
from app.core.exceptions import EVAException, NotFoundException
from app.models.conversation import utcnow
from app.schemas.upload import (
    DeleteFileResponse,
    FailedUpload,
    FileContentResponse,
    MultipleUploadResponse,
    ProcessedDocument,
    UploadHistoryResponse,
)
from app.services.document_processor import DocumentProcessor
from app.utils.validators import validate_session_id

logger = logging.getLogger(__name__)
router = APIRouter()


async def read_upload(upload: UploadFile, processor: DocumentProcessor) -> bytes:
    """Read an upload, rejecting it first when its declared size is already invalid"""
    if upload.size is not None:
        processor.validate_upload(upload.filename, upload.content_type, upload.size)
    return await upload.read()


@router.post("/single", response_model=ProcessedDocument)
async def upload_single(
    request: Request,
    file: UploadFile = File(...),
    session_id: Optional[str] = Form(None),
    analysis_type: str = Form("general"),
    processor: DocumentProcessor = Depends(get_document_processor),
):
    """Upload one document and analyze it"""
    session_id = resolve_session_id(request, session_id)
    data = await read_upload(file, processor)
    return await processor.process_upload(session_id, file.filename, file.content_type, data, analysis_type)


@router.post("/multiple", response_model=MultipleUploadResponse)
async def upload_multiple(
    request: Request,
    files: List[UploadFile] = File(...),
    session_id: Optional[str] = Form(None),
    analysis_type: str = Form("general"),
    processor: DocumentProcessor = Depends(get_document_processor),
):
    """
    Upload several documents. Each file is processed independently; rejected
    files are reported in ``errors`` and a combined summary is produced when
    more than one document yields text.
    """
    session_id = resolve_session_id(request, session_id)
    processor.validate_file_count(len(files))

    results: List[ProcessedDocument] = []
    errors: List[FailedUpload] = []
    for upload in files:
        try:
            data = await read_upload(upload, processor)
            results.append(
                await processor.process_upload(session_id, upload.filename, upload.content_type, data, analysis_type)
            )
        except EVAException as e:
            logger.warning(f"Upload of {upload.filename} failed: {e.details.code}")
            errors.append(FailedUpload(original_name=upload.filename or "", error=e.details.message))

    contents = [r.content for r in results if r.content and r.content.strip()]
    summary = await processor.summarize(contents) if len(contents) > 1 else None

    return MultipleUploadResponse(
        success=bool(results),
        processed=len(results),
        failed=len(errors),
        results=results,
        errors=errors,
        summary=summary,
    )


@router.get("/content/{file_id}", response_model=FileContentResponse)
async def get_file_content(file_id: str, processor: DocumentProcessor = Depends(get_document_processor)):
    if processor.get_file(file_id) is None:
        raise NotFoundException("File not found", resource="file", identifier=file_id)
    return FileContentResponse(file_id=file_id, content=processor.get_content(file_id), retrieved_at=utcnow())


@router.delete("/{file_id}", response_model=DeleteFileResponse)
async def delete_file(file_id: str, processor: DocumentProcessor = Depends(get_document_processor)):
    if not await processor.delete_file(file_id):
        raise NotFoundException("File not found", resource="file", identifier=file_id)
    logger.info(f"Deleted uploaded file {file_id}")
    return DeleteFileResponse(success=True, file_id=file_id, message="File deleted")


@router.get("/history/{session_id}", response_model=UploadHistoryResponse)
async def upload_history(session_id: str, processor: DocumentProcessor = Depends(get_document_processor)):
    validate_session_id(session_id)
    return UploadHistoryResponse(session_id=session_id, history=processor.history(session_id))

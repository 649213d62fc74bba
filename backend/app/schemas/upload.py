"""
Pydantic schemas for document upload operations
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class UploadedFileInfo(BaseModel):
    """Registry entry for a stored upload"""
    id: str
    original_name: str
    stored_name: str
    path: str = Field(..., exclude=True)
    size: int
    content_type: str
    session_id: str
    analysis_type: str = "general"
    uploaded_at: datetime


class ProcessedDocument(BaseModel):
    """Result of storing, extracting and analyzing one upload"""
    success: bool = True
    file: UploadedFileInfo
    content: Optional[str] = None
    analysis: Optional[str] = None
    analysis_id: Optional[str] = None
    analysis_error: Optional[str] = None


class FailedUpload(BaseModel):
    success: bool = False
    original_name: str
    error: str


class MultipleUploadResponse(BaseModel):
    success: bool
    processed: int
    failed: int
    results: List[ProcessedDocument]
    errors: List[FailedUpload] = Field(default_factory=list)
    summary: Optional[str] = None


class FileContentResponse(BaseModel):
    success: bool = True
    file_id: str
    content: Optional[str]
    retrieved_at: datetime


class UploadHistoryResponse(BaseModel):
    success: bool = True
    session_id: str
    history: List[UploadedFileInfo]


class DeleteFileResponse(BaseModel):
    success: bool
    file_id: str
    message: str

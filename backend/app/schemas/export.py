"""
Pydantic schemas for conversation export
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ExportFormat(str, Enum):
    JSON = "json"
    PDF = "pdf"
    WORD = "word"


class ExportRequest(BaseModel):
    """Schema for exporting a conversation"""
    session_id: Optional[str] = Field(None, description="Session to export; falls back to the X-Session-ID header")
    title: str = Field(default="EVA ERP Consultation Report", max_length=200)
    include_metadata: bool = Field(default=True, description="Add export metadata to JSON documents")
    include_analysis: bool = Field(default=True, description="Add analysis results to PDF/Word reports")


class ExportFile(BaseModel):
    """Serialized export ready to be sent as an attachment"""
    content: bytes
    media_type: str
    filename: str

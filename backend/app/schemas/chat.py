"""
Pydantic schemas for chat API operations
Request/Response models for chat, history and session management
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime


class ChatRequest(BaseModel):
    """Schema for submitting a chat message"""
    message: str = Field(..., description="User message")
    session_id: Optional[str] = Field(None, description="Session identifier; falls back to the X-Session-ID header")
    persona: str = Field(default="general", description="Prompting profile")
    context: Dict[str, Any] = Field(default_factory=dict, description="Request context; 'type' selects an analysis template")


class ChatResult(BaseModel):
    """Orchestrator output; always 200-shaped, errors are flagged in metadata"""
    content: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    suggestions: List[str] = Field(default_factory=list)
    session_id: str


class ChatResponse(ChatResult):
    success: bool = True


class HistoryItem(BaseModel):
    role: str
    content: str
    timestamp: datetime


class HistoryResponse(BaseModel):
    success: bool = True
    session_id: str
    history: List[HistoryItem]
    session_info: Optional[Dict[str, Any]] = None


class ClearResponse(BaseModel):
    success: bool = True
    session_id: str
    cleared: bool
    message: str


class ResolveIssueRequest(BaseModel):
    session_id: str = Field(..., description="Session owning the issue")
    message_id: str = Field(..., description="Id of the message that raised the issue")


class ResolveIssueResponse(BaseModel):
    success: bool
    session_id: str
    message_id: str


class AnalysisRequest(BaseModel):
    """Schema for ERP analysis requests"""
    session_id: Optional[str] = None
    analysis_type: str = Field(default="business_requirements", description="business_requirements|gap_analysis|risk_assessment")
    requirements: str = Field(..., min_length=1, description="Free-text requirements or system description")
    module: str = Field(default="general")
    industry: str = Field(default="general")
    complexity: str = Field(default="medium")


class AnalysisResponse(BaseModel):
    success: bool = True
    analysis_id: Optional[str] = None
    analysis_type: str
    content: str
    analysis: Optional[str] = None
    recommendations: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CodeGenerationRequest(BaseModel):
    """Schema for code generation requests"""
    session_id: Optional[str] = None
    requirements: str = Field(..., min_length=1)
    language: str = Field(default="ABAP")
    erp_system: str = Field(default="SAP")
    complexity: str = Field(default="medium")
    include_tests: bool = True


class CodeGenerationResponse(BaseModel):
    success: bool = True
    artifact_id: Optional[str] = None
    code: str
    explanation: str
    documentation: str
    test_cases: Optional[List[str]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

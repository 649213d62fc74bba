"""
Document Processor Module

Stores uploaded documents per session, extracts their text and runs an
ERP-oriented analysis through the model client. Files are kept on disk for a
limited retention period.
"""

import asyncio
import logging
import re
import secrets
import time
from datetime import datetime, timedelta
from io import BytesIO
from pathlib import Path
from typing import Dict, List, Optional

import docx
import fitz  # pymupdf

from app.core.exceptions import LLMServiceException, ProcessingException, ValidationException
from app.models.conversation import generate_id, utcnow
from app.schemas.upload import ProcessedDocument, UploadedFileInfo
from app.services.conversation_memory import ConversationMemory
from app.services.model_client import ModelClient
from app.utils.validators import validate_choice, validate_session_id

logger = logging.getLogger(__name__)

ALLOWED_TYPES: Dict[str, str] = {
    ".pdf": "application/pdf",
    ".doc": "application/msword",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".xls": "application/vnd.ms-excel",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".csv": "text/csv",
    ".json": "application/json",
    ".xml": "application/xml",
}
GENERIC_MIME_TYPE = "application/octet-stream"
SUSPICIOUS_EXTENSIONS = {".exe", ".bat", ".cmd", ".com", ".pif", ".scr", ".vbs", ".js"}
PLAIN_TEXT_EXTENSIONS = {".txt", ".md", ".csv", ".json", ".xml"}
MAX_PROMPT_CHARS = 20000

DOCUMENT_PROMPTS: Dict[str, str] = {
    "business_requirements": """Analyze the following business requirements document ({file_type}):

DOCUMENT CONTENT:
{content}

Provide a comprehensive ERP requirements analysis:

**BUSINESS PROCESS IDENTIFICATION:** processes mentioned, grouped by functional area, with dependencies
**FUNCTIONAL REQUIREMENTS:** core functionality, integrations, reporting, user access
**NON-FUNCTIONAL REQUIREMENTS:** performance, security, compliance, scalability
**ERP MODULE MAPPING:** recommended modules, alternative solutions, custom development needs
**GAPS & CHALLENGES:** missing or unclear information and implementation risks
**IMPLEMENTATION PRIORITY:** must-have, should-have, could-have
**NEXT STEPS:** documentation, stakeholder interviews, proof of concept

Focus on actionable insights for ERP selection and implementation.""",
    "current_system": """Analyze the following description of a current system ({file_type}):

DOCUMENT CONTENT:
{content}

Cover: **CURRENT STATE OVERVIEW**, **PAIN POINTS**, **DATA LANDSCAPE**, **INTEGRATIONS**,
**MIGRATION CONSIDERATIONS** and **MODERNIZATION RECOMMENDATIONS**.""",
    "data_mapping": """Analyze the following data structures for ERP migration ({file_type}):

DOCUMENT CONTENT:
{content}

Cover: **SOURCE ENTITIES**, **TARGET ERP OBJECTS**, **FIELD MAPPING**, **TRANSFORMATION RULES**,
**DATA QUALITY ISSUES** and **MIGRATION SEQUENCE**.""",
    "gap_analysis": """Perform an ERP gap analysis on the following document ({file_type}):

DOCUMENT CONTENT:
{content}

Cover: **CURRENT STATE**, **TARGET STATE**, **FUNCTIONAL GAPS**, **TECHNICAL GAPS**, **PROCESS GAPS**,
**PRIORITIZATION** and **RECOMMENDATIONS** for each gap.""",
    "general": """Review the following document ({file_type}) from an ERP consulting perspective:

DOCUMENT CONTENT:
{content}

Summarize the key points, identify ERP-relevant requirements, decisions and risks, and suggest next steps.""",
}


def sanitize_basename(filename: str) -> str:
    return re.sub(r"[^a-zA-Z0-9]", "_", Path(filename).stem)[:50] or "file"


def extract_pdf_text(data: bytes) -> str:
    with fitz.open(stream=data, filetype="pdf") as pdf:
        return "\n".join(page.get_text() for page in pdf)


def extract_docx_text(data: bytes) -> str:
    document = docx.Document(BytesIO(data))
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def extract_text(data: bytes, extension: str) -> Optional[str]:
    """Text of a document, or None for formats without an extractor (.doc, .xls, .xlsx)"""
    if extension in PLAIN_TEXT_EXTENSIONS:
        return data.decode("utf-8", errors="replace")
    if extension == ".pdf":
        return extract_pdf_text(data)
    if extension == ".docx":
        return extract_docx_text(data)
    return None


class DocumentProcessor:
    """Upload storage, text extraction and LLM analysis for documents"""

    def __init__(
        self,
        upload_dir: str,
        model_client: ModelClient,
        memory: ConversationMemory,
        max_upload_size: int = 10 * 1024 * 1024,
        max_files: int = 5,
        retention: timedelta = timedelta(hours=24),
    ):
        self.upload_dir = Path(upload_dir)
        self.model_client = model_client
        self.memory = memory
        self.max_upload_size = max_upload_size
        self.max_files = max_files
        self.retention = retention
        self._files: Dict[str, UploadedFileInfo] = {}
        self._contents: Dict[str, Optional[str]] = {}
        self.logger = logging.getLogger(self.__class__.__name__)

    def validate_upload(self, filename: Optional[str], content_type: Optional[str], size: int) -> str:
        """
        Check name, type and size of an upload.

        Returns:
            The lowercased file extension

        Raises:
            ValidationException: The file is rejected
        """
        if not filename:
            raise ValidationException("No file uploaded", field="file")

        extension = Path(filename).suffix.lower()
        if extension in SUSPICIOUS_EXTENSIONS:
            raise ValidationException(
                f"File type {extension} is not allowed for security reasons", field="file", value=filename
            )
        if extension not in ALLOWED_TYPES:
            raise ValidationException(
                f"Invalid file type: {extension or 'none'}. Allowed types: "
                + ", ".join(ext.lstrip(".").upper() for ext in ALLOWED_TYPES),
                field="file",
                value=filename,
            )
        mime_type = (content_type or "").split(";")[0].strip().lower()
        if mime_type and mime_type not in (ALLOWED_TYPES[extension], GENERIC_MIME_TYPE):
            raise ValidationException(
                f"File extension {extension} doesn't match MIME type {content_type}", field="file", value=filename
            )
        if size > self.max_upload_size:
            raise ValidationException(
                f"File too large. Maximum size is {self.max_upload_size // (1024 * 1024)}MB.",
                field="file",
                value=size,
            )
        if size == 0:
            raise ValidationException("Uploaded file is empty", field="file", value=filename)
        return extension

    def validate_file_count(self, count: int) -> None:
        if count == 0:
            raise ValidationException("No files uploaded", field="files")
        if count > self.max_files:
            raise ValidationException(
                f"Too many files. Maximum is {self.max_files} files per upload.", field="files", value=count
            )

    async def process_upload(
        self,
        session_id: str,
        filename: str,
        content_type: Optional[str],
        data: bytes,
        analysis_type: str = "general",
    ) -> ProcessedDocument:
        """
        Validate, store, extract and analyze one document.

        Analysis failures are reported in ``analysis_error``; extraction
        failures remove the stored file and raise.

        Raises:
            ValidationException: Rejected upload or unknown analysis type
            ProcessingException: Text extraction failed
        """
        validate_session_id(session_id)
        validate_choice(analysis_type, DOCUMENT_PROMPTS, "analysis_type")
        extension = self.validate_upload(filename, content_type, len(data))

        info = await self._store(session_id, filename, content_type or ALLOWED_TYPES[extension], data, analysis_type)

        try:
            content = await asyncio.to_thread(extract_text, data, extension)
        except Exception as e:
            self.logger.error(f"Text extraction failed for {filename}: {e}")
            await self._remove(info.id)
            raise ProcessingException(f"Unable to read {filename}: {e}", process_step="text_extraction") from e

        self._contents[info.id] = content
        result = ProcessedDocument(file=info, content=content)

        if not content or not content.strip():
            result.analysis_error = f"Text extraction is not available for {extension} files"
            return result

        try:
            result.analysis = await self.analyze(content, extension, analysis_type)
        except LLMServiceException as e:
            self.logger.warning(f"Document analysis failed for {filename}: {e}")
            result.analysis_error = e.details.message
            return result

        record = await self.memory.add_analysis_result(
            session_id,
            f"document:{analysis_type}",
            {"file_id": info.id, "file_name": info.original_name, "analysis": result.analysis},
        )
        if record:
            result.analysis_id = record.id
        return result

    async def analyze(self, content: str, file_type: str, analysis_type: str = "general") -> str:
        template = DOCUMENT_PROMPTS.get(analysis_type, DOCUMENT_PROMPTS["general"])
        prompt = template.format(file_type=file_type, content=content[:MAX_PROMPT_CHARS])
        completion = await self.model_client.complete([{"role": "user", "content": prompt}])
        return completion.content

    async def summarize(self, contents: List[str]) -> Optional[str]:
        """Combined summary of several documents; None when the model call fails"""
        joined = "\n\n---\n\n".join(c[: MAX_PROMPT_CHARS // max(len(contents), 1)] for c in contents if c)
        if not joined:
            return None
        prompt = (
            "Summarize the following documents for an ERP implementation team. "
            "Highlight shared requirements, conflicts and open questions.\n\n" + joined
        )
        try:
            completion = await self.model_client.complete([{"role": "user", "content": prompt}])
        except LLMServiceException as e:
            self.logger.warning(f"Document summary failed: {e}")
            return None
        return completion.content

    def get_content(self, file_id: str) -> Optional[str]:
        return self._contents.get(file_id)

    def get_file(self, file_id: str) -> Optional[UploadedFileInfo]:
        return self._files.get(file_id)

    def history(self, session_id: str) -> List[UploadedFileInfo]:
        files = [info for info in self._files.values() if info.session_id == session_id]
        return sorted(files, key=lambda info: info.uploaded_at)

    async def delete_file(self, file_id: str) -> bool:
        return await self._remove(file_id)

    async def cleanup_old_files(self, now: Optional[datetime] = None) -> int:
        """Delete uploads older than the retention period; returns the count removed"""
        now = now or utcnow()
        expired = [fid for fid, info in self._files.items() if now - info.uploaded_at > self.retention]
        for file_id in expired:
            await self._remove(file_id)

        # files left over from a previous process
        cutoff = time.time() - self.retention.total_seconds()
        orphans = await asyncio.to_thread(self._remove_stale_files, cutoff)

        removed = len(expired) + orphans
        if removed:
            self.logger.info(f"Cleaned up {removed} old uploaded files")
        return removed

    async def _store(
        self, session_id: str, filename: str, content_type: str, data: bytes, analysis_type: str
    ) -> UploadedFileInfo:
        session_dir = self.upload_dir / session_id
        upload_root = self.upload_dir.resolve()
        if session_dir.resolve().parent != upload_root:
            raise ValidationException("Invalid session ID for file storage", field="session_id", value=session_id)
        extension = Path(filename).suffix.lower()
        stored_name = f"{int(time.time() * 1000)}_{secrets.token_hex(8)}_{sanitize_basename(filename)}{extension}"
        path = session_dir / stored_name

        def write() -> None:
            session_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)

        await asyncio.to_thread(write)

        info = UploadedFileInfo(
            id=generate_id("file"),
            original_name=filename,
            stored_name=stored_name,
            path=str(path),
            size=len(data),
            content_type=content_type,
            session_id=session_id,
            analysis_type=analysis_type,
            uploaded_at=utcnow(),
        )
        self._files[info.id] = info
        self.logger.info(f"File uploaded: {filename} - {len(data)} bytes (session={session_id})")
        return info

    async def _remove(self, file_id: str) -> bool:
        info = self._files.pop(file_id, None)
        self._contents.pop(file_id, None)
        if info is None:
            return False
        await asyncio.to_thread(Path(info.path).unlink, missing_ok=True)
        return True

    def _remove_stale_files(self, cutoff: float) -> int:
        if not self.upload_dir.exists():
            return 0
        removed = 0
        for path in self.upload_dir.rglob("*"):
            if path.is_file() and path.stat().st_mtime < cutoff:
                path.unlink(missing_ok=True)
                removed += 1
        for directory in sorted(self.upload_dir.iterdir()):
            if directory.is_dir() and not any(directory.iterdir()):
                directory.rmdir()
        return removed

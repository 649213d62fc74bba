"""
Conversation export service
Serializes a session to JSON, PDF (PyMuPDF) or Word (python-docx)
"""

import json
import logging
import textwrap
from io import BytesIO
from typing import Any, Dict, List, Tuple

import fitz  # pymupdf
from docx import Document

from app.core.exceptions import NotFoundException, ProcessingException
from app.models.conversation import ConversationSession, IssueStatus, utcnow
from app.schemas.export import ExportFile, ExportFormat
from app.services.conversation_memory import ConversationMemory
from app.utils.validators import validate_session_id

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
EXPORT_SOURCE = "EVA ERP Assistant"
DOCX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# A4 in points
PAGE_WIDTH, PAGE_HEIGHT = 595, 842
MARGIN = 50
LINE_HEIGHT = 14
WRAP_CHARS = 95

Section = Tuple[str, List[str]]


def report_sections(session: ConversationSession, include_analysis: bool = True) -> List[Section]:
    """Headings and paragraphs shared by the PDF and Word renderers"""
    context = session.context
    metadata = session.metadata

    sections: List[Section] = [
        ("Session Overview", [
            f"Session ID: {session.id}",
            f"Persona: {session.persona}",
            f"Implementation Phase: {context.implementation_phase.value}",
            f"Messages: {metadata.message_count}",
            f"Created: {metadata.created_at.isoformat()}",
            f"Last Activity: {metadata.last_activity.isoformat()}",
        ]),
    ]

    if context.business_requirements:
        sections.append(("Business Requirements", [f"- {r}" for r in context.business_requirements]))
    if context.technical_specs:
        sections.append(("Technical Specifications", [f"- {s}" for s in context.technical_specs]))
    if context.stakeholders:
        sections.append(("Stakeholders", [f"- {s}" for s in context.stakeholders]))
    if context.decisions:
        sections.append(("Decisions", [f"- {d.decision} ({d.timestamp.isoformat()})" for d in context.decisions]))
    if context.open_issues:
        sections.append(("Issues", [
            f"- [{i.status.value}] {i.issue}" + (f" (resolved {i.resolved_at.isoformat()})" if i.status == IssueStatus.RESOLVED and i.resolved_at else "")
            for i in context.open_issues
        ]))

    if include_analysis and metadata.analysis_results:
        paragraphs = []
        for record in metadata.analysis_results:
            result = record.result
            text = result.get("content") or result.get("analysis") if isinstance(result, dict) else None
            paragraphs.append(f"{record.type} ({record.timestamp.isoformat()})")
            paragraphs.append(str(text if text is not None else result))
        sections.append(("Analysis Results", paragraphs))

    sections.append(("Conversation", [
        f"{m.role.value.upper()} [{m.timestamp.isoformat()}]: {m.content}" for m in session.messages
    ]))
    return sections


class ExportService:
    """Builds export documents from live sessions"""

    def __init__(self, memory: ConversationMemory):
        self.memory = memory

    def _require_session(self, session_id: str) -> ConversationSession:
        validate_session_id(session_id)
        exported = self.memory.export_session(session_id)
        if exported is None or not exported.session.messages:
            raise NotFoundException(
                "No conversation history found for this session", resource="session", identifier=session_id
            )
        return exported.session

    def build_json(self, session_id: str, include_metadata: bool = True) -> Dict[str, Any]:
        session = self._require_session(session_id)
        document: Dict[str, Any] = {
            "session_id": session.id,
            "exported_at": utcnow().isoformat(),
            "conversation": {
                "persona": session.persona,
                "messages": [m.model_dump(mode="json") for m in session.messages],
                "message_count": len(session.messages),
                "total_messages": session.metadata.message_count,
                "created_at": session.metadata.created_at.isoformat(),
                "last_activity": session.metadata.last_activity.isoformat(),
            },
            "context": session.context.model_dump(mode="json"),
        }
        if include_metadata:
            document["metadata"] = {
                "version": EXPORT_VERSION,
                "format": "JSON",
                "source": EXPORT_SOURCE,
            }
        return document

    def render_pdf(self, session_id: str, title: str, include_analysis: bool = True) -> bytes:
        session = self._require_session(session_id)
        try:
            return self._pdf_bytes(title, report_sections(session, include_analysis))
        except Exception as e:
            logger.error(f"PDF export failed for session {session_id}: {e}")
            raise ProcessingException("Unable to generate PDF report", process_step="pdf_export") from e

    def render_docx(self, session_id: str, title: str, include_analysis: bool = True) -> bytes:
        session = self._require_session(session_id)
        try:
            return self._docx_bytes(title, report_sections(session, include_analysis))
        except Exception as e:
            logger.error(f"Word export failed for session {session_id}: {e}")
            raise ProcessingException("Unable to generate Word document", process_step="word_export") from e

    def export(
        self,
        session_id: str,
        export_format: ExportFormat,
        title: str = "EVA ERP Consultation Report",
        include_metadata: bool = True,
        include_analysis: bool = True,
    ) -> ExportFile:
        """
        Serialize a session in the requested format.

        Raises:
            ValidationException: Malformed session id
            NotFoundException: Unknown session or no messages
            ProcessingException: The document renderer failed
        """
        if export_format == ExportFormat.JSON:
            document = self.build_json(session_id, include_metadata)
            export_file = ExportFile(
                content=json.dumps(document, indent=2, ensure_ascii=False).encode("utf-8"),
                media_type="application/json",
                filename=f"eva-conversation-{session_id}.json",
            )
        elif export_format == ExportFormat.PDF:
            export_file = ExportFile(
                content=self.render_pdf(session_id, title, include_analysis),
                media_type="application/pdf",
                filename=f"eva-report-{session_id}.pdf",
            )
        else:
            export_file = ExportFile(
                content=self.render_docx(session_id, title, include_analysis),
                media_type=DOCX_MEDIA_TYPE,
                filename=f"eva-report-{session_id}.docx",
            )

        logger.info(f"Exported session {session_id} as {export_format.value} ({len(export_file.content)} bytes)")
        return export_file

    @staticmethod
    def _pdf_bytes(title: str, sections: List[Section]) -> bytes:
        pdf = fitz.open()
        page = pdf.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        y = MARGIN

        def write(line: str, fontsize: float = 10, fontname: str = "helv") -> None:
            nonlocal page, y
            if y + LINE_HEIGHT > PAGE_HEIGHT - MARGIN:
                page = pdf.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
                y = MARGIN
            page.insert_text((MARGIN, y), line, fontsize=fontsize, fontname=fontname)
            y += LINE_HEIGHT if fontsize <= 10 else LINE_HEIGHT + (fontsize - 10)

        write(title, fontsize=18, fontname="hebo")
        write(f"Generated {utcnow().strftime('%Y-%m-%d %H:%M UTC')} by {EXPORT_SOURCE}", fontsize=9)
        for heading, paragraphs in sections:
            y += LINE_HEIGHT / 2
            write(heading, fontsize=13, fontname="hebo")
            for paragraph in paragraphs:
                for raw_line in paragraph.splitlines() or [""]:
                    for line in textwrap.wrap(raw_line, WRAP_CHARS) or [""]:
                        write(line)

        try:
            return pdf.tobytes()
        finally:
            pdf.close()

    @staticmethod
    def _docx_bytes(title: str, sections: List[Section]) -> bytes:
        document = Document()
        document.add_heading(title, level=0)
        document.add_paragraph(f"Generated {utcnow().strftime('%Y-%m-%d %H:%M UTC')} by {EXPORT_SOURCE}")
        for heading, paragraphs in sections:
            document.add_heading(heading, level=1)
            for paragraph in paragraphs:
                document.add_paragraph(paragraph)

        buffer = BytesIO()
        document.save(buffer)
        return buffer.getvalue()

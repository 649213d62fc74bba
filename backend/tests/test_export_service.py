"""
Unit Tests: Conversation Export
===============================

JSON document shape, PDF and Word rendering, and missing-session handling.
"""

import json
from io import BytesIO

import docx
import fitz
import pytest
import pytest_asyncio

from app.core.exceptions import NotFoundException, ValidationException
from app.models.conversation import MessageRole
from app.schemas.export import ExportFormat
from app.services.export_service import DOCX_MEDIA_TYPE, ExportService, report_sections


@pytest.fixture
def export_service(memory) -> ExportService:
    return ExportService(memory)


@pytest_asyncio.fixture
async def populated(memory):
    await memory.append_message("s1", "We need a business requirement for multi-currency invoicing.")
    await memory.append_message("s1", "Let's decide on SAP S/4HANA.", MessageRole.USER)
    await memory.append_message("s1", "Good choice. Here is a plan.", MessageRole.ASSISTANT)
    await memory.add_analysis_result("s1", "gap_analysis", {"content": "Two gaps found"})
    return memory


class TestJsonExport:

    @pytest.mark.asyncio
    async def test_json_document_round_trip(self, populated, export_service):
        export_file = export_service.export("s1", ExportFormat.JSON)

        assert export_file.media_type == "application/json"
        assert export_file.filename == "eva-conversation-s1.json"

        document = json.loads(export_file.content)
        conversation = document["conversation"]
        assert document["session_id"] == "s1"
        assert conversation["message_count"] == 3
        assert [m["content"] for m in conversation["messages"]] == [
            m.content for m in populated.history("s1")
        ]
        assert [m["role"] for m in conversation["messages"]] == ["user", "user", "assistant"]
        assert document["context"]["business_requirements"] == [
            "We need a business requirement for multi-currency invoicing"
        ]
        assert document["metadata"] == {"version": "1.0", "format": "JSON", "source": "EVA ERP Assistant"}

    @pytest.mark.asyncio
    async def test_metadata_can_be_omitted(self, populated, export_service):
        document = export_service.build_json("s1", include_metadata=False)

        assert "metadata" not in document


class TestDocumentExports:

    @pytest.mark.asyncio
    async def test_pdf_contains_title_and_messages(self, populated, export_service):
        export_file = export_service.export("s1", ExportFormat.PDF, title="Acme ERP Review")

        assert export_file.media_type == "application/pdf"
        assert export_file.filename == "eva-report-s1.pdf"
        assert export_file.content.startswith(b"%PDF")

        with fitz.open(stream=export_file.content, filetype="pdf") as pdf:
            text = "\n".join(page.get_text() for page in pdf)
        assert "Acme ERP Review" in text
        assert "Good choice. Here is a plan." in text
        assert "Two gaps found" in text

    @pytest.mark.asyncio
    async def test_long_conversation_spans_pages(self, memory, export_service):
        for index in range(80):
            await memory.append_message("long", f"Message number {index} about ledger configuration.")

        content = export_service.render_pdf("long", "Long report")

        with fitz.open(stream=content, filetype="pdf") as pdf:
            assert pdf.page_count > 1

    @pytest.mark.asyncio
    async def test_word_document(self, populated, export_service):
        export_file = export_service.export("s1", ExportFormat.WORD, title="Acme ERP Review", include_analysis=False)

        assert export_file.media_type == DOCX_MEDIA_TYPE
        assert export_file.filename == "eva-report-s1.docx"

        document = docx.Document(BytesIO(export_file.content))
        paragraphs = [p.text for p in document.paragraphs]
        assert paragraphs[0] == "Acme ERP Review"
        assert "Business Requirements" in paragraphs
        assert "Analysis Results" not in paragraphs

    @pytest.mark.asyncio
    async def test_report_sections_order(self, populated):
        headings = [heading for heading, _ in report_sections(populated.get("s1"))]

        assert headings[0] == "Session Overview"
        assert headings[-1] == "Conversation"
        assert "Decisions" in headings


class TestMissingSessions:

    def test_unknown_session_not_found(self, export_service):
        with pytest.raises(NotFoundException):
            export_service.export("missing", ExportFormat.JSON)

    @pytest.mark.asyncio
    async def test_session_without_messages_not_found(self, memory, export_service):
        await memory.ensure("empty")

        with pytest.raises(NotFoundException):
            export_service.export("empty", ExportFormat.PDF)

    def test_malformed_session_id(self, export_service):
        with pytest.raises(ValidationException):
            export_service.export("bad id!", ExportFormat.JSON)

"""
Unit Tests: Document Processor
==============================

Tests for upload handling covering:
1. Upload validation (type, MIME, size, count)
2. Storage, text extraction and analysis
3. Degraded analysis on model failure
4. Registry lookups, deletion and retention cleanup
"""

import os
import time
from datetime import timedelta
from io import BytesIO
from pathlib import Path
from unittest.mock import AsyncMock, Mock

import docx
import fitz
import pytest

from app.core.exceptions import ProcessingException, UpstreamTimeoutException, ValidationException
from app.models.conversation import utcnow
from app.services.document_processor import DocumentProcessor, extract_text, sanitize_basename
from app.services.model_client import ModelClient


@pytest.fixture
def processor(tmp_path, memory, model_client_factory) -> DocumentProcessor:
    return DocumentProcessor(
        str(tmp_path / "uploads"),
        model_client_factory("The document describes order-to-cash requirements."),
        memory,
        max_upload_size=1024 * 1024,
        max_files=3,
    )


def _pdf_bytes(text: str) -> bytes:
    pdf = fitz.open()
    page = pdf.new_page()
    page.insert_text((72, 72), text)
    data = pdf.tobytes()
    pdf.close()
    return data


def _docx_bytes(text: str) -> bytes:
    document = docx.Document()
    document.add_paragraph(text)
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


class TestValidation:

    def test_accepts_matching_type(self, processor):
        assert processor.validate_upload("reqs.TXT", "text/plain", 10) == ".txt"

    def test_accepts_generic_mime_and_parameters(self, processor):
        assert processor.validate_upload("a.csv", "application/octet-stream", 10) == ".csv"
        assert processor.validate_upload("a.txt", "text/plain; charset=utf-8", 10) == ".txt"

    @pytest.mark.parametrize("filename,content_type", [
        ("virus.exe", "application/octet-stream"),
        ("script.js", "text/javascript"),
        ("image.png", "image/png"),
        ("noext", "text/plain"),
        ("report.pdf", "text/plain"),
    ])
    def test_rejects_bad_files(self, processor, filename, content_type):
        with pytest.raises(ValidationException):
            processor.validate_upload(filename, content_type, 10)

    def test_rejects_oversized_and_empty(self, processor):
        with pytest.raises(ValidationException):
            processor.validate_upload("a.txt", "text/plain", 2 * 1024 * 1024)
        with pytest.raises(ValidationException):
            processor.validate_upload("a.txt", "text/plain", 0)

    def test_file_count(self, processor):
        processor.validate_file_count(3)
        with pytest.raises(ValidationException):
            processor.validate_file_count(0)
        with pytest.raises(ValidationException):
            processor.validate_file_count(4)

    def test_sanitize_basename(self):
        assert sanitize_basename("../../etc/pass wd.txt") == "pass_wd"


class TestExtraction:

    def test_plain_text(self):
        assert extract_text("línea".encode("utf-8"), ".md") == "línea"

    def test_pdf(self):
        assert "Order to cash" in extract_text(_pdf_bytes("Order to cash"), ".pdf")

    def test_docx(self):
        assert "Procure to pay" in extract_text(_docx_bytes("Procure to pay"), ".docx")

    def test_legacy_formats_not_extracted(self):
        assert extract_text(b"\xd0\xcf\x11\xe0", ".xls") is None


class TestProcessUpload:

    @pytest.mark.asyncio
    async def test_text_upload_is_stored_and_analyzed(self, processor, memory, tmp_path):
        await memory.ensure("s1")

        result = await processor.process_upload("s1", "requirements.txt", "text/plain", b"We sell globally.")

        assert result.success
        assert result.content == "We sell globally."
        assert result.analysis == "The document describes order-to-cash requirements."
        assert Path(result.file.path).read_bytes() == b"We sell globally."
        assert Path(result.file.path).parent == tmp_path / "uploads" / "s1"

        records = memory.get("s1").metadata.analysis_results
        assert records[0].id == result.analysis_id
        assert records[0].type == "document:general"

    @pytest.mark.asyncio
    async def test_docx_upload(self, processor):
        result = await processor.process_upload(
            "s1",
            "spec.docx",
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            _docx_bytes("Warehouse management needs"),
            analysis_type="business_requirements",
        )

        assert "Warehouse management needs" in result.content
        assert result.analysis is not None

    @pytest.mark.asyncio
    async def test_spreadsheet_stored_without_analysis(self, processor):
        result = await processor.process_upload("s1", "data.xlsx", None, b"PK\x03\x04binary")

        assert result.content is None
        assert result.analysis is None
        assert "not available" in result.analysis_error

    @pytest.mark.asyncio
    async def test_model_failure_reported_as_analysis_error(self, tmp_path, memory):
        model_client = Mock(spec=ModelClient)
        model_client.complete = AsyncMock(side_effect=UpstreamTimeoutException(model="m", timeout_seconds=30))
        processor = DocumentProcessor(str(tmp_path), model_client, memory)

        result = await processor.process_upload("s1", "notes.txt", "text/plain", b"Some notes")

        assert result.success
        assert result.analysis is None
        assert result.analysis_error
        assert processor.get_file(result.file.id) is not None

    @pytest.mark.asyncio
    async def test_corrupt_pdf_raises_and_removes_file(self, processor, tmp_path):
        with pytest.raises(ProcessingException):
            await processor.process_upload("s1", "broken.pdf", "application/pdf", b"not a pdf at all")

        assert processor.history("s1") == []
        assert list((tmp_path / "uploads" / "s1").iterdir()) == []

    @pytest.mark.asyncio
    async def test_unknown_analysis_type(self, processor):
        with pytest.raises(ValidationException):
            await processor.process_upload("s1", "a.txt", "text/plain", b"x", analysis_type="tarot")


class TestRegistry:

    @pytest.mark.asyncio
    async def test_content_history_and_delete(self, processor):
        first = await processor.process_upload("s1", "a.txt", "text/plain", b"first")
        second = await processor.process_upload("s1", "b.txt", "text/plain", b"second")
        await processor.process_upload("s2", "c.txt", "text/plain", b"other")

        assert processor.get_content(first.file.id) == "first"
        assert [f.id for f in processor.history("s1")] == [first.file.id, second.file.id]

        assert await processor.delete_file(first.file.id) is True
        assert not Path(first.file.path).exists()
        assert processor.get_file(first.file.id) is None
        assert await processor.delete_file(first.file.id) is False

    @pytest.mark.asyncio
    async def test_cleanup_removes_expired_uploads(self, processor):
        old = await processor.process_upload("s1", "old.txt", "text/plain", b"old")
        fresh = await processor.process_upload("s1", "fresh.txt", "text/plain", b"fresh")
        processor._files[old.file.id].uploaded_at = utcnow() - timedelta(hours=25)

        removed = await processor.cleanup_old_files()

        assert removed == 1
        assert processor.get_file(old.file.id) is None
        assert processor.get_file(fresh.file.id) is not None

    @pytest.mark.asyncio
    async def test_cleanup_removes_orphaned_files(self, processor, tmp_path):
        orphan_dir = tmp_path / "uploads" / "previous_run"
        orphan_dir.mkdir(parents=True)
        orphan = orphan_dir / "stale.txt"
        orphan.write_text("stale")
        stale_time = time.time() - 48 * 3600
        os.utime(orphan, (stale_time, stale_time))

        removed = await processor.cleanup_old_files()

        assert removed == 1
        assert not orphan_dir.exists()


class TestStoragePaths:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id", ["..", ".", "..."])
    async def test_dot_session_ids_rejected(self, tmp_path, memory, model_client_factory, session_id):
        upload_dir = tmp_path / "a" / "uploads"
        processor = DocumentProcessor(str(upload_dir), model_client_factory("ok"), memory)

        with pytest.raises(ValidationException):
            await processor.process_upload(session_id, "notes.txt", "text/plain", b"hello business")

        assert list(tmp_path.rglob("*notes.txt")) == []
        assert processor.history(session_id) == []

    @pytest.mark.asyncio
    async def test_store_refuses_paths_outside_upload_dir(self, processor, tmp_path):
        with pytest.raises(ValidationException):
            await processor._store("..", "notes.txt", "text/plain", b"hello", "general")

        assert list(tmp_path.rglob("*notes.txt")) == []

    @pytest.mark.asyncio
    async def test_dotted_session_id_stays_inside_upload_dir(self, processor, tmp_path):
        result = await processor.process_upload("v1.2", "notes.txt", "text/plain", b"hello business")

        upload_dir = (tmp_path / "uploads").resolve()
        assert upload_dir in Path(result.file.path).resolve().parents

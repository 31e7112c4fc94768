"""
Unit tests for document text extraction.
"""

from io import BytesIO

import docx
import pytest
from pypdf import PdfWriter
from unittest.mock import MagicMock, patch

from helpdesk_assist.documents import MAX_UPLOAD_BYTES, extract_document
from helpdesk_assist.errors import ExtractionError, UnsupportedTypeError, ValidationError


DOCX_TYPE = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"


def make_docx(*paragraphs: str) -> bytes:
    document = docx.Document()
    for paragraph in paragraphs:
        document.add_paragraph(paragraph)
    buffer = BytesIO()
    document.save(buffer)
    return buffer.getvalue()


def make_blank_pdf(pages: int) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=200, height=200)
    buffer = BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


class TestPlainText:
    """Tests for text uploads."""

    def test_utf8_text(self):
        document = extract_document("Grüße aus München".encode("utf-8"), "text/plain", "mail.txt")

        assert document.text == "Grüße aus München"
        assert document.kind == "Text"
        assert document.filename == "mail.txt"
        assert document.word_count == 3

    def test_mime_parameters_are_ignored(self):
        document = extract_document(b"hello", "Text/Plain; charset=utf-8")
        assert document.kind == "Text"

    def test_invalid_bytes_are_replaced(self):
        document = extract_document(b"caf\xe9", "text/plain")
        assert document.text == "caf�"


class TestWord:
    """Tests for Word uploads."""

    def test_paragraphs_are_joined(self):
        data = make_docx("Dear support,", "the portal is down.")

        document = extract_document(data, DOCX_TYPE, "letter.docx")

        assert document.text == "Dear support,\nthe portal is down."
        assert document.kind == "Word"
        assert document.warnings == []

    def test_docx_labelled_as_doc_warns(self):
        document = extract_document(make_docx("old label"), "application/msword", "letter.doc")

        assert document.text == "old label"
        assert document.warnings == ["File is labelled as legacy .doc but was read as .docx"]

    def test_binary_doc_is_rejected(self):
        # OLE2 compound file header used by Word 97-2003
        data = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 512

        with pytest.raises(ExtractionError) as exc_info:
            extract_document(data, "application/msword", "letter.doc")

        assert exc_info.value.summary == "Legacy .doc files are not supported"
        assert "convert the document to .docx" in exc_info.value.detail

    def test_corrupt_document(self):
        with pytest.raises(ExtractionError):
            extract_document(b"not a zip archive", DOCX_TYPE)


class TestPdf:
    """Tests for PDF uploads."""

    def test_page_count(self):
        document = extract_document(make_blank_pdf(3), "application/pdf", "scan.pdf")

        assert document.kind == "PDF"
        assert document.page_count == 3

    def test_pages_are_joined(self):
        with patch("helpdesk_assist.documents.PdfReader") as mock_reader:
            mock_reader.return_value.pages = [
                MagicMock(**{"extract_text.return_value": "Page one"}),
                MagicMock(**{"extract_text.return_value": None}),
                MagicMock(**{"extract_text.return_value": "Page three"}),
            ]

            document = extract_document(b"%PDF-1.7", "application/pdf")

        assert document.text == "Page one\n\nPage three"
        assert document.page_count == 3

    def test_corrupt_pdf(self):
        with pytest.raises(ExtractionError) as exc_info:
            extract_document(b"definitely not a pdf", "application/pdf")
        assert exc_info.value.summary == "PDF could not be read"


class TestLimits:
    """Tests for rejected uploads."""

    def test_empty_upload(self):
        with pytest.raises(ValidationError):
            extract_document(b"", "text/plain")

    def test_too_large(self):
        with pytest.raises(ValidationError) as exc_info:
            extract_document(b"a" * (MAX_UPLOAD_BYTES + 1), "text/plain")
        assert exc_info.value.summary == "File too large"

    def test_at_limit_is_accepted(self):
        document = extract_document(b"a" * MAX_UPLOAD_BYTES, "text/plain")
        assert len(document.text) == MAX_UPLOAD_BYTES

    @pytest.mark.parametrize("mime_type", ["image/png", "application/zip", ""])
    def test_unsupported_type(self, mime_type):
        with pytest.raises(UnsupportedTypeError) as exc_info:
            extract_document(b"data", mime_type)
        assert exc_info.value.summary == f"Unsupported document type: {mime_type}"

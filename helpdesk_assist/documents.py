"""
Document text extraction for Helpdesk Assist.

Supports PDF (pypdf), Word (python-docx) and plain text formats. Anything
else is rejected with UnsupportedTypeError.
"""

import logging
from io import BytesIO

from docx import Document
from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import ExtractionError, UnsupportedTypeError, ValidationError
from .models import ExtractedDocument


logger = logging.getLogger(__name__)


MAX_UPLOAD_BYTES = 10 * 1024 * 1024

PDF_TYPES = ("application/pdf",)
WORD_TYPES = (
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
)
TEXT_TYPES = ("text/plain", "text/markdown", "text/csv")

SUPPORTED_TYPES = PDF_TYPES + WORD_TYPES + TEXT_TYPES


def extract_pdf_text(data: bytes) -> tuple[str, int]:
    """Return the text and page count of a PDF."""
    try:
        reader = PdfReader(BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except (PyPdfError, ValueError, OSError) as e:
        logger.error(f"PDF extraction failed: {e}")
        raise ExtractionError("PDF could not be read", str(e)) from e
    return "\n".join(pages), len(pages)


def extract_word_text(data: bytes) -> str:
    """Return the paragraph text of a Word document."""
    try:
        document = Document(BytesIO(data))
    except Exception as e:
        logger.error(f"Word extraction failed: {e}")
        raise ExtractionError("Word document could not be read", str(e)) from e
    return "\n".join(paragraph.text for paragraph in document.paragraphs)


def extract_plain_text(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def extract_document(data: bytes, mime_type: str, filename: str = "") -> ExtractedDocument:
    """
    Extract plain text from an uploaded document.

    Args:
        data: Raw file content.
        mime_type: Declared MIME type of the upload.
        filename: Original file name, kept for display.

    Returns:
        ExtractedDocument with the text and format details.

    Raises:
        ValidationError: If the file is empty or larger than MAX_UPLOAD_BYTES.
        UnsupportedTypeError: If the MIME type is not supported.
        ExtractionError: If a supported document cannot be parsed.
    """
    if not data:
        raise ValidationError("No file uploaded")
    if len(data) > MAX_UPLOAD_BYTES:
        raise ValidationError(
            "File too large",
            f"{len(data)} bytes, maximum is {MAX_UPLOAD_BYTES}",
        )

    mime_type = (mime_type or "").split(";")[0].strip().lower()
    logger.info(f"Extracting text from {filename or 'upload'} ({mime_type})")

    if mime_type in PDF_TYPES:
        text, page_count = extract_pdf_text(data)
        document = ExtractedDocument(text=text, filename=filename, kind="PDF", page_count=page_count)
    elif mime_type == "application/msword":
        # python-docx only reads the OOXML format
        try:
            text = extract_word_text(data)
        except ExtractionError as e:
            raise ExtractionError(
                "Legacy .doc files are not supported", "Please convert the document to .docx"
            ) from e
        document = ExtractedDocument(
            text=text,
            filename=filename,
            kind="Word",
            warnings=["File is labelled as legacy .doc but was read as .docx"],
        )
    elif mime_type in WORD_TYPES:
        document = ExtractedDocument(text=extract_word_text(data), filename=filename, kind="Word")
    elif mime_type in TEXT_TYPES:
        document = ExtractedDocument(text=extract_plain_text(data), filename=filename, kind="Text")
    else:
        raise UnsupportedTypeError(mime_type)

    logger.info(f"Extracted {document.word_count} words, {len(document.text)} characters")
    return document

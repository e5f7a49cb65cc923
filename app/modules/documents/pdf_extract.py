"""PDF text extraction for AI processing of digital (non-scanned) documents."""

import io
import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from pypdf import PdfReader

logger = logging.getLogger(__name__)


class PDFExtractionError(Exception):
    """code is one of EMPTY_PDF, PARSE_ERROR, NO_TEXT."""

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass
class PDFTextResult:
    text: str
    num_pages: int
    info: Dict[str, Optional[str]] = field(default_factory=dict)


def is_pdf_bytes(data: bytes) -> bool:
    return len(data) >= 5 and data[:5] == b"%PDF-"


def extract_text_from_pdf(data: bytes) -> PDFTextResult:
    if not data:
        raise PDFExtractionError("EMPTY_PDF", "PDF file is empty")
    try:
        reader = PdfReader(io.BytesIO(data))
        text = "\n".join(page.extract_text() or "" for page in reader.pages)
        metadata = reader.metadata
    except Exception as e:
        logger.warning(f"PDF parse failed: {e}")
        raise PDFExtractionError("PARSE_ERROR", str(e) or "Failed to parse PDF") from e

    if not text.strip():
        raise PDFExtractionError("NO_TEXT", "No extractable text found in PDF. This may be a scanned document.")

    return PDFTextResult(
        text=text,
        num_pages=len(reader.pages),
        info={
            "title": metadata.title if metadata else None,
            "author": metadata.author if metadata else None,
            "subject": metadata.subject if metadata else None,
            "creator": metadata.creator if metadata else None,
        },
    )


def truncate_text(text: str, max_length: int = 10000) -> str:
    """Cut to max_length, backing up to a word boundary when one is near the end."""
    if len(text) <= max_length:
        return text
    truncated = text[:max_length]
    last_space = truncated.rfind(" ")
    if last_space > max_length * 0.8:
        return truncated[:last_space] + "..."
    return truncated + "..."

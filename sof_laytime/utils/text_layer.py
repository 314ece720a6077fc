"""
Text Layer Module
Reads the embedded text of PDF/DOCX/TXT documents as RawLineItems.

This is a text-layer reader only; scanned pages without a text layer yield
nothing. Recognition of images belongs to the OCR service.
"""

import io
import logging
from pathlib import Path
from typing import List

import pdfplumber
from docx import Document

from ..models import RawLineItem

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".pdf", ".docx", ".txt"}


def _pdf_pages(data: bytes) -> List[str]:
    pages: List[str] = []
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            for page in pdf.pages:
                pages.append(page.extract_text() or "")
    except Exception as e:
        logger.error("PDF text extraction failed: %s", e)
        return []
    logger.info("Extracted text layer of %d PDF pages", len(pages))
    return pages


def _docx_text(data: bytes) -> str:
    try:
        doc = Document(io.BytesIO(data))
    except Exception as e:
        logger.error("DOCX text extraction failed: %s", e)
        return ""

    text_content = [p.text.strip() for p in doc.paragraphs if p.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                text_content.append(" | ".join(cells))
    return "\n".join(text_content)


def extract_lines(filename: str, data: bytes) -> List[RawLineItem]:
    """
    Split a document's text layer into line items.

    Args:
        filename: Used only for its extension
        data: Raw file bytes

    Returns:
        One RawLineItem per non-empty line, with page and line numbers and no
        confidence score. Unsupported extensions give an empty list.
    """
    ext = Path(filename or "").suffix.lower()
    if ext == ".pdf":
        pages = _pdf_pages(data)
    elif ext == ".docx":
        pages = [_docx_text(data)]
    elif ext == ".txt":
        pages = [data.decode("utf-8", errors="replace")]
    else:
        logger.warning("Unsupported file type for text layer: %s", ext or filename)
        return []

    items: List[RawLineItem] = []
    for page_no, page_text in enumerate(pages, start=1):
        line_no = 0
        for raw in page_text.splitlines():
            text = raw.strip()
            if not text:
                continue
            line_no += 1
            items.append(RawLineItem(text=text, page=page_no, line=line_no))
    return items

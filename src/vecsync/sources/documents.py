"""PDF and Word (.docx) to Markdown conversion for the connectors.

Both converters take the raw file bytes so local files and downloaded
responses go through the same path. The output starts with a ``# {title}``
heading; multi-page PDFs get one ``## Page N`` section per page with text.
Pages that yield no text (scanned images, etc.) are skipped.
"""

from __future__ import annotations

import io
import re
import zipfile

import docx
import pypdf
from docx.opc.exceptions import PackageNotFoundError
from pypdf.errors import PyPdfError

PDF_TYPES = {"application/pdf", "application/x-pdf"}
DOCX_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}

_WS_RE = re.compile(r"[ \t]+")
_BLANK_RUN_RE = re.compile(r"\n{3,}")


class DocumentConversionError(ValueError):
    """Raised when a PDF or DOCX file cannot be parsed."""


def pdf_to_markdown(data: bytes, title: str) -> str:
    """Extract the text of every page of a PDF into Markdown."""
    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        pages = [(page.extract_text() or "") for page in reader.pages]
    except (PyPdfError, ValueError, KeyError) as exc:
        raise DocumentConversionError(f"Cannot read PDF '{title}': {exc}") from exc

    parts = [f"# {title}"]
    for number, text in enumerate(pages, start=1):
        text = _clean(text)
        if not text:
            continue
        if len(pages) > 1:
            parts.append(f"## Page {number}")
        parts.append(text)
    return "\n\n".join(parts) if len(parts) > 1 else ""


def docx_to_markdown(data: bytes, title: str) -> str:
    """Paragraphs (headings as ATX headings) and table rows of a .docx file."""
    try:
        document = docx.Document(io.BytesIO(data))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise DocumentConversionError(f"Cannot read DOCX '{title}': {exc}") from exc

    parts = [f"# {title}"]
    for paragraph in document.paragraphs:
        text = paragraph.text.strip()
        if not text:
            continue
        level = _heading_level(paragraph.style.name if paragraph.style is not None else "")
        parts.append(f"{'#' * (level + 1)} {text}" if level else text)

    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                parts.append(" | ".join(cells))

    return "\n\n".join(parts) if len(parts) > 1 else ""


def _heading_level(style_name: str) -> int:
    """1-5 for Word's 'Heading N' styles, 0 otherwise."""
    name = style_name.strip().lower()
    if not name.startswith("heading "):
        return 0
    suffix = name.removeprefix("heading ").strip()
    return min(int(suffix), 5) if suffix.isdigit() and int(suffix) > 0 else 0


def _clean(text: str) -> str:
    lines = (_WS_RE.sub(" ", line).strip() for line in text.replace("\r\n", "\n").split("\n"))
    return _BLANK_RUN_RE.sub("\n\n", "\n".join(lines)).strip()

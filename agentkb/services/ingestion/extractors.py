"""Format-specific content extractors: bytes + declared MIME type → plain text.

# ─── HOW EXTRACTION IS ROUTED (Junior Developer Guide) ────────────────
#
#   application/pdf                                  → PyMuPDF page text
#   application/vnd.openxmlformats-...document       → python-docx paragraphs
#   text/csv                                         → one line per row,
#                                                      cells joined by spaces
#   application/json                                 → pretty-printed JSON
#   text/html                                        → BeautifulSoup text
#   anything else (text/plain, text/markdown, ...)   → UTF-8 decode
#
# A generic ``application/octet-stream`` upload is re-routed by the file
# extension of its original name when one is known.
#
# Every extractor raises ContentExtractionError ("PDF parsing failed: ...")
# on a corrupt payload.  The source processor treats that as a content
# error: the job is not retried.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import csv
import io
import json
import mimetypes
from collections.abc import Callable

import docx
import fitz  # PyMuPDF -- the "fitz" import name is a PyMuPDF convention
import structlog
from bs4 import BeautifulSoup

from agentkb.utils.errors import ContentExtractionError

logger = structlog.get_logger(logger_name=__name__)

PDF_MIME = "application/pdf"
DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
CSV_MIME = "text/csv"
JSON_MIME = "application/json"
HTML_MIME = "text/html"
_GENERIC_MIMES = frozenset({"", "application/octet-stream", "binary/octet-stream"})

_EXTENSION_MIMES: dict[str, str] = {
    ".pdf": PDF_MIME,
    ".docx": DOCX_MIME,
    ".csv": CSV_MIME,
    ".json": JSON_MIME,
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".txt": "text/plain",
    ".html": HTML_MIME,
    ".htm": HTML_MIME,
}


def extract_pdf(data: bytes) -> str:
    """Concatenate the text of every page, pages separated by blank lines."""
    try:
        doc = fitz.open(stream=data, filetype="pdf")
    except Exception as exc:
        raise ContentExtractionError(message=f"PDF parsing failed: {exc}") from exc

    try:
        pages = [page.get_text("text").strip() for page in doc]
    except Exception as exc:
        raise ContentExtractionError(message=f"PDF parsing failed: {exc}") from exc
    finally:
        doc.close()

    return "\n\n".join(p for p in pages if p)


def extract_docx(data: bytes) -> str:
    """Return non-empty paragraphs (and table cell text) separated by blank lines."""
    try:
        document = docx.Document(io.BytesIO(data))
    except Exception as exc:
        raise ContentExtractionError(message=f"DOCX parsing failed: {exc}") from exc

    blocks = [para.text for para in document.paragraphs if para.text.strip()]
    for table in document.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells if cell.text.strip()]
            if cells:
                blocks.append(" ".join(cells))
    return "\n\n".join(blocks)


def extract_csv(data: bytes) -> str:
    """Flatten rows to lines; cell values joined with a single space."""
    try:
        text = data.decode("utf-8-sig")
        rows = list(csv.reader(io.StringIO(text)))
    except (UnicodeDecodeError, csv.Error) as exc:
        raise ContentExtractionError(message=f"CSV parsing failed: {exc}") from exc

    lines = [" ".join(cell.strip() for cell in row if cell.strip()) for row in rows]
    return "\n".join(line for line in lines if line)


def extract_json(data: bytes) -> str:
    """Re-serialize with two-space indentation."""
    try:
        parsed = json.loads(data.decode("utf-8-sig"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ContentExtractionError(message=f"JSON parsing failed: {exc}") from exc
    return json.dumps(parsed, indent=2, ensure_ascii=False)


def extract_html(data: bytes) -> str:
    soup = BeautifulSoup(data, "html.parser")
    for tag in soup.find_all(["script", "style", "noscript"]):
        tag.decompose()
    return soup.get_text(separator="\n", strip=True)


def extract_plain(data: bytes) -> str:
    """Decode as UTF-8; undecodable bytes become U+FFFD rather than failing."""
    return data.decode("utf-8", errors="replace")


_EXTRACTORS: dict[str, Callable[[bytes], str]] = {
    PDF_MIME: extract_pdf,
    DOCX_MIME: extract_docx,
    CSV_MIME: extract_csv,
    JSON_MIME: extract_json,
    HTML_MIME: extract_html,
}


def resolve_mime_type(mime_type: str | None, file_name: str | None = None) -> str:
    """Normalize a declared MIME type, falling back to the file extension."""
    mime = (mime_type or "").split(";", 1)[0].strip().lower()
    if mime in _GENERIC_MIMES and file_name:
        suffix = "." + file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
        mime = _EXTENSION_MIMES.get(suffix) or mimetypes.guess_type(file_name)[0] or mime
    return mime or "text/plain"


def extract_text(data: bytes, mime_type: str | None, file_name: str | None = None) -> str:
    """Dispatch *data* to the extractor for its MIME type.

    Raises
    ------
    agentkb.utils.errors.ContentExtractionError
        If the payload cannot be parsed as its declared format.
    """
    mime = resolve_mime_type(mime_type, file_name)
    extractor = _EXTRACTORS.get(mime, extract_plain)
    text = extractor(data)
    logger.debug(
        "content_extracted",
        mime_type=mime,
        extractor=extractor.__name__,
        input_bytes=len(data),
        output_chars=len(text),
    )
    return text


def supported_mime_types() -> list[str]:
    """MIME types with a dedicated extractor (others are decoded as text)."""
    return sorted(_EXTRACTORS)

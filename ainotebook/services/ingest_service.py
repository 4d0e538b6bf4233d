"""Normalize an uploaded file into grounding text.

Every upload ends up as ``SourceContent(mime_type="text/plain", data=...)``:

- spreadsheets are flattened sheet by sheet into CSV blocks
- PDFs use their text layer, or OCR when that layer is missing or too thin
- Word documents give their raw paragraph text
- images are OCR'd directly
- anything else is decoded as UTF-8

Failures are raised as ``IngestError`` subclasses whose ``diagnostic`` is meant
for the upload form. Nothing here touches the notebook store.
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import mimetypes
import re
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Awaitable, Callable

from ainotebook.core.config import settings
from ainotebook.core.errors import (
    CollaboratorUnavailableError,
    FileTooLargeError,
    IngestError,
    ParseError,
)
from ainotebook.core.models import SourceContent
from ainotebook.adapters.pdf.reader import open_pdf
from ainotebook.services.ocr_factory import get_ocr_engine

log = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]

ACCEPTED_EXTENSIONS = (
    ".txt", ".md", ".csv",
    ".jpeg", ".jpg", ".png", ".webp",
    ".xlsx", ".xls",
    ".pdf",
    ".doc", ".docx",
)
SPREADSHEET_EXTENSIONS = (".xlsx", ".xls")
WORD_EXTENSIONS = (".doc", ".docx")
WORD_MIME_TYPES = {
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
}
TEXT_EXTENSIONS = (".txt", ".md", ".csv")
_GENERIC_MIME_TYPES = {"", "application/octet-stream"}

FILE_TOO_LARGE = "File is too large. Maximum size is {mb} MB."
PDF_PARSE_FAILED = "PDF parse failed. The file may be corrupt or unsupported."
INGEST_CANCELLED = "Ingestion cancelled."


class SourceKind(str, Enum):
    PLAIN_TEXT = "plain_text"
    SPREADSHEET = "spreadsheet"
    PDF = "pdf"
    WORD = "word"
    IMAGE = "image"
    UNKNOWN = "unknown"


_FAILURE_DIAGNOSTICS = {
    SourceKind.SPREADSHEET: "Spreadsheet parse failed.",
    SourceKind.PDF: PDF_PARSE_FAILED,
    SourceKind.WORD: "Word document parse failed.",
    SourceKind.IMAGE: "Image OCR failed.",
    SourceKind.PLAIN_TEXT: "File could not be read as UTF-8 text.",
    SourceKind.UNKNOWN: "File could not be read as UTF-8 text.",
}


def effective_mime_type(mime_type: str | None, file_name: str | None) -> str:
    """Browsers and curl often send octet-stream; fall back to the file name."""
    mime = (mime_type or "").strip().lower()
    if mime in _GENERIC_MIME_TYPES and file_name:
        guessed, _ = mimetypes.guess_type(file_name)
        return (guessed or mime).lower()
    return mime


def classify(file_name: str | None, mime_type: str | None) -> SourceKind:
    name = (file_name or "").lower()
    mime = (mime_type or "").lower()
    if name.endswith(SPREADSHEET_EXTENSIONS):
        return SourceKind.SPREADSHEET
    if mime == "application/pdf" or name.endswith(".pdf"):
        return SourceKind.PDF
    if mime in WORD_MIME_TYPES or name.endswith(WORD_EXTENSIONS):
        return SourceKind.WORD
    if mime.startswith("image/"):
        return SourceKind.IMAGE
    if mime.startswith("text/") or name.endswith(TEXT_EXTENSIONS):
        return SourceKind.PLAIN_TEXT
    return SourceKind.UNKNOWN


def non_whitespace_len(text: str) -> int:
    return len(re.sub(r"\s", "", text or ""))


def needs_ocr(page_texts: list[str], page_count: int, threshold: int | None = None) -> bool:
    """Decide whether the extracted text layer is too thin to trust.

    `page_texts` holds the pages that extracted; `page_count` includes pages that failed.
    """
    threshold = settings.PDF_MEANINGFUL_CHARS if threshold is None else threshold
    if page_count <= 0:
        return True
    has_meaningful = any(non_whitespace_len(t) > threshold for t in page_texts)
    average = sum(non_whitespace_len(t) for t in page_texts) / page_count
    log.debug("pdf text layer: pages=%d meaningful=%s avg_chars=%.1f", page_count, has_meaningful, average)
    return not has_meaningful or average < threshold


def _join_pages(texts: list[str]) -> str:
    return "".join(f"{t}\n\n" for t in texts)


# --- plain text ---------------------------------------------------------------

async def _ingest_text(data: bytes, **_: Any) -> str:
    try:
        # utf-8-sig drops a leading byte order mark.
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(_FAILURE_DIAGNOSTICS[SourceKind.PLAIN_TEXT]) from e


# --- spreadsheets ---------------------------------------------------------------

def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, datetime):
        # Excel stores plain dates as midnight datetimes.
        if value.time() == time.min:
            return value.date().isoformat()
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def _rows_to_csv(rows: list[list[Any]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    for row in rows:
        writer.writerow([_cell_text(v) for v in row])
    return buf.getvalue().rstrip("\n")


def _read_xlsx(data: bytes) -> list[tuple[str, list[list[Any]]]]:
    try:
        from openpyxl import load_workbook
    except ImportError as e:
        raise CollaboratorUnavailableError("openpyxl is not installed.") from e
    wb = load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    try:
        return [(ws.title, [list(r) for r in ws.iter_rows(values_only=True)]) for ws in wb.worksheets]
    finally:
        wb.close()


def _read_xls(data: bytes) -> list[tuple[str, list[list[Any]]]]:
    try:
        import xlrd
    except ImportError as e:
        raise CollaboratorUnavailableError("xlrd is not installed.") from e
    book = xlrd.open_workbook(file_contents=data)

    # xlrd hands back dates as serial numbers and booleans as 0/1; the cell type says which.
    def value(v: Any, ctype: int) -> Any:
        if ctype == xlrd.XL_CELL_DATE:
            return xlrd.xldate_as_datetime(v, book.datemode)
        if ctype == xlrd.XL_CELL_BOOLEAN:
            return bool(v)
        return v

    return [
        (sh.name, [[value(v, t) for v, t in zip(sh.row_values(i), sh.row_types(i))] for i in range(sh.nrows)])
        for sh in book.sheets()
    ]


def flatten_workbook(sheets: list[tuple[str, list[list[Any]]]]) -> str:
    out = []
    for name, rows in sheets:
        out.append(f"--- SHEET: {name} ---\n\n{_rows_to_csv(rows)}\n\n")
    return "".join(out)


async def _ingest_spreadsheet(data: bytes, *, file_name: str, **_: Any) -> str:
    reader = _read_xls if file_name.lower().endswith(".xls") else _read_xlsx
    sheets = await asyncio.to_thread(reader, data)
    return flatten_workbook(sheets)


# --- word ---------------------------------------------------------------------------

def _read_docx(data: bytes) -> str:
    try:
        from docx import Document as Docx
    except ImportError as e:
        raise CollaboratorUnavailableError("python-docx is not installed.") from e
    d = Docx(io.BytesIO(data))
    parts = [p.text for p in d.paragraphs if p.text.strip()]
    for table in d.tables:
        for row in table.rows:
            cells = [c.text.strip() for c in row.cells]
            if any(cells):
                parts.append("\t".join(cells))
    return "\n".join(parts)


async def _ingest_word(data: bytes, **_: Any) -> str:
    return await asyncio.to_thread(_read_docx, data)


# --- images -------------------------------------------------------------------------

def _decode_image(data: bytes) -> Any:
    try:
        from PIL import Image
    except ImportError as e:
        raise CollaboratorUnavailableError("Pillow is not installed.") from e
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except Exception as e:
        raise ParseError("Image could not be decoded.") from e
    return img


async def _ingest_image(data: bytes, *, on_status: StatusCallback, **_: Any) -> str:
    image = await asyncio.to_thread(_decode_image, data)
    on_status("Initializing OCR engine...")
    engine = get_ocr_engine()
    try:
        on_status("Running OCR on image... 0%")
        text = await engine.recognize(
            image,
            on_progress=lambda p: on_status(f"Running OCR on image... {round(p * 100)}%"),
        )
    finally:
        await engine.terminate()
    return text.strip()


# --- pdf ------------------------------------------------------------------------------

async def _ocr_pdf(pdf: Any, page_count: int, on_status: StatusCallback, cancel: asyncio.Event | None) -> str:
    engine = get_ocr_engine()
    try:
        texts = []
        for i in range(page_count):
            if cancel is not None and cancel.is_set():
                raise IngestError(INGEST_CANCELLED)
            on_status(f"OCR page {i + 1} of {page_count}...")
            image = await asyncio.to_thread(pdf.render_page, i, settings.PDF_OCR_SCALE)
            texts.append(await engine.recognize(image))
        return _join_pages(texts)
    finally:
        await engine.terminate()


async def _ingest_pdf(
    data: bytes,
    *,
    on_status: StatusCallback,
    cancel: asyncio.Event | None = None,
    **_: Any,
) -> str:
    on_status("Parsing PDF...")
    try:
        pdf = await asyncio.to_thread(open_pdf, data)
    except IngestError:
        raise
    except Exception as e:
        raise ParseError(PDF_PARSE_FAILED) from e

    try:
        page_count = pdf.page_count
        if page_count == 0:
            raise ParseError(PDF_PARSE_FAILED)

        # Pass 1: text layer.
        texts: list[str] = []
        for i in range(page_count):
            try:
                texts.append(await asyncio.to_thread(pdf.extract_text, i))
            except Exception as e:
                log.warning("no text layer for pdf page %d: %s", i + 1, e)

        if not needs_ocr(texts, page_count):
            return _join_pages(texts).strip()

        # Pass 2: scanned document, OCR every page.
        log.info("pdf text layer too thin, falling back to OCR over %d pages", page_count)
        on_status("Image-based PDF detected. Trying OCR...")
        return (await _ocr_pdf(pdf, page_count, on_status, cancel)).strip()
    finally:
        pdf.close()


_HANDLERS: dict[SourceKind, Callable[..., Awaitable[str]]] = {
    SourceKind.PLAIN_TEXT: _ingest_text,
    SourceKind.UNKNOWN: _ingest_text,
    SourceKind.SPREADSHEET: _ingest_spreadsheet,
    SourceKind.PDF: _ingest_pdf,
    SourceKind.WORD: _ingest_word,
    SourceKind.IMAGE: _ingest_image,
}


def _noop_status(_: str) -> None:
    return None


async def ingest_upload(
    data: bytes,
    mime_type: str | None,
    file_name: str | None,
    on_status: StatusCallback | None = None,
    cancel: asyncio.Event | None = None,
) -> SourceContent:
    """Turn raw upload bytes into normalized text content.

    `on_status` receives progress lines ("OCR page 2 of 5...") while work is
    under way; the final outcome is the return value or an IngestError.
    """
    on_status = on_status or _noop_status
    file_name = file_name or ""

    if len(data) >= settings.MAX_UPLOAD_BYTES:
        mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
        raise FileTooLargeError(FILE_TOO_LARGE.format(mb=mb))

    mime = effective_mime_type(mime_type, file_name)
    kind = classify(file_name, mime)
    log.info("ingesting %r (%s, %d bytes) as %s", file_name, mime or "?", len(data), kind.value)

    handler = _HANDLERS[kind]
    try:
        text = await handler(data, file_name=file_name, on_status=on_status, cancel=cancel)
    except IngestError as e:
        log.warning("ingest of %r failed: %s", file_name, e.diagnostic)
        raise
    except Exception as e:
        log.exception("ingest of %r failed while parsing %s", file_name, kind.value)
        raise ParseError(_FAILURE_DIAGNOSTICS[kind]) from e

    return SourceContent(mime_type="text/plain", data=text)

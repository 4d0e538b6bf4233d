from __future__ import annotations

import io
from typing import Any

from ainotebook.core.errors import CollaboratorUnavailableError


class PdfDocument:
    """Page-indexed text layer (pypdf) plus page rendering (PyMuPDF).

    The PyMuPDF handle is only opened when a page is rendered, which only
    happens on the OCR fallback path.
    """

    def __init__(self, data: bytes):
        try:
            from pypdf import PdfReader
        except ImportError as e:
            raise CollaboratorUnavailableError("pypdf is not installed.") from e
        self._data = data
        self._reader = PdfReader(io.BytesIO(data))
        self._rendered = None

    @property
    def page_count(self) -> int:
        return len(self._reader.pages)

    def extract_text(self, index: int) -> str:
        return self._reader.pages[index].extract_text() or ""

    def render_page(self, index: int, scale: float) -> Any:
        """Rasterize one page into a PIL RGB image at `scale` x 72 dpi."""
        try:
            import fitz  # pymupdf
            from PIL import Image
        except ImportError as e:
            raise CollaboratorUnavailableError("PyMuPDF and Pillow are required to render PDF pages.") from e

        if self._rendered is None:
            self._rendered = fitz.open(stream=self._data, filetype="pdf")
        page = self._rendered[index]
        pix = page.get_pixmap(matrix=fitz.Matrix(scale, scale), alpha=False)
        return Image.frombytes("RGB", (pix.width, pix.height), pix.samples)

    def close(self) -> None:
        if self._rendered is not None:
            self._rendered.close()
            self._rendered = None


def open_pdf(data: bytes) -> PdfDocument:
    return PdfDocument(data)

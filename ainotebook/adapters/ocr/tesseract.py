import asyncio
import logging
from typing import Any

from ainotebook.core.config import settings
from ainotebook.core.errors import CollaboratorUnavailableError
from ainotebook.adapters.ocr.base import OCREngine, ProgressCallback

log = logging.getLogger(__name__)

OCR_UNAVAILABLE = "OCR engine unavailable. Install Tesseract and pytesseract, then retry."


def _load_pytesseract():
    try:
        import pytesseract
    except ImportError as e:
        raise CollaboratorUnavailableError(OCR_UNAVAILABLE) from e
    if settings.TESSERACT_CMD:
        pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD
    return pytesseract


def tesseract_available() -> bool:
    try:
        pytesseract = _load_pytesseract()
        pytesseract.get_tesseract_version()
        return True
    except Exception:
        return False


class TesseractOCR(OCREngine):
    name = "tesseract"

    def __init__(self, lang: str | None = None):
        self._pytesseract = _load_pytesseract()
        self.lang = lang or settings.OCR_LANG
        self._terminated = False

    async def recognize(self, image: Any, on_progress: ProgressCallback | None = None) -> str:
        """OCR one image in a worker thread.

        pytesseract runs tesseract as a single subprocess call with no intermediate
        output, so progress is coarse: 0.0 when the call starts and 1.0 when it returns.
        """
        if self._terminated:
            raise RuntimeError("OCR engine already terminated")
        if on_progress:
            on_progress(0.0)
        try:
            text = await asyncio.to_thread(self._pytesseract.image_to_string, image, lang=self.lang)
        except self._pytesseract.TesseractNotFoundError as e:
            raise CollaboratorUnavailableError(OCR_UNAVAILABLE) from e
        if on_progress:
            on_progress(1.0)
        return text or ""

    async def terminate(self) -> None:
        self._terminated = True
        log.debug("tesseract engine released")

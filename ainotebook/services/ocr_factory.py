from ainotebook.adapters.ocr.base import OCREngine
from ainotebook.adapters.ocr.tesseract import TesseractOCR

def get_ocr_engine() -> OCREngine:
    # A fresh engine per ingestion; callers terminate() it when done.
    return TesseractOCR()

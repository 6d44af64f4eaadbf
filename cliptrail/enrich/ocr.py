# Purpose: extract text from screenshots with EasyOCR
# one line per detected text region, best candidate only, joined with "\n"

import logging
import os
import threading
from typing import Callable, List, Optional

from cliptrail.core.config import settings
from cliptrail.core.errors import EnrichmentError

log = logging.getLogger(__name__)

# reader(path) -> list of recognized lines
Recognizer = Callable[[str], List[str]]

# Initialize EasyOCR reader (lazy loading, shared by every enrichment thread)
_ocr_reader = None
_reader_lock = threading.Lock()


def get_ocr_reader():
    """Lazy load EasyOCR reader"""
    global _ocr_reader
    with _reader_lock:
        if _ocr_reader is None:
            try:
                import easyocr
            except ImportError as e:
                raise EnrichmentError("EasyOCR not installed. Install with: pip install cliptrail[ocr]") from e

            log.info("[SYSTEM] Loading EasyOCR (first time only)...")
            try:
                _ocr_reader = easyocr.Reader(settings.ocr_languages, gpu=False)
            except Exception as e:
                raise EnrichmentError(f"EasyOCR failed to load: {e}") from e
            log.info("[SYSTEM] EasyOCR loaded successfully")
    return _ocr_reader


def easyocr_recognizer(image_path: str) -> List[str]:
    """Accurate mode: beam search decoding, one result per region"""
    reader = get_ocr_reader()
    # EasyOCR returns list of (bbox, text, confidence)
    results = reader.readtext(image_path, decoder="beamsearch", paragraph=False)
    return [result[1] for result in results]


def extract_text_from_image(image_path: str, recognizer: Optional[Recognizer] = None) -> str:
    """
    Recognize text in an image file
    returns "" when no text was found, raises EnrichmentError on failure
    """
    if not os.path.exists(image_path):
        raise EnrichmentError(f"Image not found: {image_path}")

    recognizer = recognizer or easyocr_recognizer
    try:
        lines = recognizer(image_path)
    except EnrichmentError:
        raise
    except Exception as e:
        raise EnrichmentError(f"OCR failed for {os.path.basename(image_path)}: {e}") from e

    return "\n".join(line.strip() for line in lines if line and line.strip())

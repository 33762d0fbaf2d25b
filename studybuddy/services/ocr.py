from __future__ import annotations

import base64
import binascii
import io

import pytesseract
import structlog
from PIL import Image, UnidentifiedImageError

logger = structlog.get_logger()


class OcrUnavailable(RuntimeError):
    """The Tesseract engine is missing or failed on the image."""


def decode_image(image_base64: str) -> Image.Image:
    """Decode a raw or data-URL base64 image; raises ValueError on bad input."""
    payload = (image_base64 or "").strip()
    if payload.startswith("data:") and "," in payload:
        payload = payload.split(",", 1)[1]
    try:
        data = base64.b64decode(payload, validate=True)
        return Image.open(io.BytesIO(data))
    except (binascii.Error, UnidentifiedImageError) as e:
        raise ValueError(f"Invalid image data: {e}") from e


def extract_text_from_image(image_base64: str, lang: str = "eng") -> str:
    image = decode_image(image_base64)
    if image.mode not in ("RGB", "L"):
        image = image.convert("RGB")
    try:
        text = pytesseract.image_to_string(image, lang=lang) or ""
    except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError) as e:
        logger.error("ocr_failed", error=str(e))
        raise OcrUnavailable(f"OCR engine unavailable: {e}") from e
    logger.info("ocr_completed", chars=len(text))
    return text.strip()

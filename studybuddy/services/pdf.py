from __future__ import annotations

import io
import os
import re
import time

import structlog
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from studybuddy.config import UPLOAD_DIR

logger = structlog.get_logger()


def clean_text(text: str) -> str:
    """Collapse trailing whitespace before newlines and runs of blank lines."""
    text = re.sub(r"[ \t]+\n", "\n", text or "")
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def extract_text_from_pdf(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as e:
        raise ValueError(f"PDF parse error: {e}") from e
    text = clean_text("\n".join(pages))
    logger.info("pdf_text_extracted", pages=len(pages), chars=len(text))
    return text


def store_upload(filename: str, data: bytes, upload_dir: str = None) -> str:
    """Write an uploaded file under the upload dir and return its path."""
    directory = upload_dir or UPLOAD_DIR
    os.makedirs(directory, exist_ok=True)
    safe_name = os.path.basename(filename or "upload.pdf")
    path = os.path.join(directory, f"{int(time.time() * 1000)}-{safe_name}")
    with open(path, "wb") as fh:
        fh.write(data)
    return path


def remove_upload(path: str) -> bool:
    if not path or not os.path.exists(path):
        return False
    try:
        os.remove(path)
        return True
    except OSError as e:
        logger.warning("upload_delete_failed", path=path, error=str(e))
        return False

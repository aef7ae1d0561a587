from __future__ import annotations

import logging
from io import BytesIO

from PyPDF2 import PdfReader

from .errors import UnsupportedDocument

logger = logging.getLogger(__name__)


def extract_text(data: bytes, mime_type: str) -> str:
    """Plain text of an uploaded reference file (PDF or text/plain)."""
    if mime_type == "application/pdf":
        reader = PdfReader(BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
        logger.info("Extracted text from %d PDF pages", len(pages))
        return "\n".join(pages)
    if mime_type == "text/plain":
        return data.decode("utf-8", errors="replace")
    raise UnsupportedDocument(f"Format de fichier non supporté ({mime_type}). Utilisez PDF ou TXT.")

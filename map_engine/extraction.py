"""Local PDF text extraction backed by pdfplumber."""

from __future__ import annotations

import io
import logging
from typing import Dict, List

import pdfplumber

from .errors import ExtractionError

logger = logging.getLogger(__name__)

PARSER_VERSION = "1.0"


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _metadata(info: Dict) -> Dict[str, str]:
    return {
        "title": _text(info.get("Title")) or "Untitled",
        "author": _text(info.get("Author")) or "Unknown",
        "subject": _text(info.get("Subject")),
        "keywords": _text(info.get("Keywords")),
        "creator": _text(info.get("Creator")) or "Unknown",
        "producer": _text(info.get("Producer")) or "Unknown",
        "creationDate": _text(info.get("CreationDate")),
        "modificationDate": _text(info.get("ModDate")),
    }


def extract_text(data: bytes) -> str:
    return extract_pdf(data)["text"]


def extract_pdf(data: bytes) -> Dict:
    """Extract the text of every page plus document info from PDF bytes.

    Returns ``{numpages, numrender, info, metadata, version, text}``.
    """
    if not data:
        raise ExtractionError("Empty PDF file")
    try:
        with pdfplumber.open(io.BytesIO(data)) as pdf:
            pages: List[str] = [page.extract_text() or "" for page in pdf.pages]
            info = {str(k): _text(v) for k, v in (pdf.metadata or {}).items()}
    except Exception as exc:  # noqa: BLE001
        # pdfminer raises a wide range of internal errors on damaged files
        logger.warning("pdf extraction failed: %s", exc)
        raise ExtractionError(f"Failed to parse PDF: {exc}") from exc

    return {
        "numpages": len(pages),
        "numrender": len(pages),
        "info": info,
        "metadata": _metadata(info),
        "version": PARSER_VERSION,
        "text": "\n\n".join(pages),
    }

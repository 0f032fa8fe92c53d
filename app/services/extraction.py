"""
Text Extraction Service

Turns uploaded file bytes into plain text for chunking.

Supported formats:
    - Plain text (.txt) and Markdown (.md): UTF-8 decoding
    - PDF (.pdf): Text extraction via PyMuPDF (fitz)
    - Word (.docx): Paragraph text via python-docx
"""

from __future__ import annotations

import asyncio
import logging
import zipfile
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path
from typing import Final

import fitz  # PyMuPDF
from docx import Document as DocxDocument

from app.core.exceptions import StorageError, ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS: Final[frozenset[str]] = frozenset({".txt", ".md", ".pdf", ".docx"})


@dataclass(frozen=True)
class ExtractedText:
    content: str
    file_type: str
    page_count: int | None = None


def check_extension(filename: str) -> str:
    """
    Return the lower-cased extension of ``filename``.

    Raises:
        ValidationError: If the extension is not supported.
    """
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_EXTENSIONS:
        raise ValidationError(
            f"Unsupported file type: '{suffix or filename}'. "
            f"Supported: {', '.join(sorted(SUPPORTED_EXTENSIONS))}"
        )
    return suffix


class TextExtractor:
    """
    Async text extractor.

    Parsing is offloaded to a thread pool via ``asyncio.to_thread`` so
    large PDFs do not block the event loop.

    Usage::

        extractor = TextExtractor()
        result = await extractor.extract("policy.pdf", raw_bytes)
        print(result.page_count, len(result.content))
    """

    async def extract(self, filename: str, raw: bytes) -> ExtractedText:
        """
        Extract text from ``raw`` according to the extension of ``filename``.

        Raises:
            ValidationError: Unsupported extension.
            StorageError: The file could not be decoded or parsed.
        """
        suffix = check_extension(filename)

        try:
            if suffix == ".pdf":
                content, pages = await asyncio.to_thread(self._extract_pdf, raw)
                result = ExtractedText(content=content, file_type="pdf", page_count=pages)
            elif suffix == ".docx":
                content = await asyncio.to_thread(self._extract_docx, raw)
                result = ExtractedText(content=content, file_type="docx")
            else:
                result = ExtractedText(
                    content=raw.decode("utf-8"),
                    file_type="markdown" if suffix == ".md" else "text",
                )
        except (UnicodeDecodeError, ValueError, RuntimeError, zipfile.BadZipFile) as e:
            logger.warning("Could not extract text from %s: %s", filename, e)
            raise StorageError(f"Could not read '{filename}': {e}") from e

        logger.info(
            "Extracted %s: %s (%d bytes -> %d chars)",
            result.file_type,
            filename,
            len(raw),
            len(result.content),
        )
        return result

    @staticmethod
    def _extract_pdf(raw: bytes) -> tuple[str, int]:
        """Synchronous helper; call via ``asyncio.to_thread``."""
        doc = fitz.open(stream=raw, filetype="pdf")
        try:
            pages: list[str] = [page.get_text() for page in doc]
            return "\n".join(pages), len(pages)
        finally:
            doc.close()

    @staticmethod
    def _extract_docx(raw: bytes) -> str:
        doc = DocxDocument(BytesIO(raw))
        return "\n".join(p.text for p in doc.paragraphs)

"""PDF text extraction for uploaded resumes.

Only text-layer PDFs are supported; image-only scans are rejected rather than
OCR'd.
"""

from __future__ import annotations

import asyncio
import io
import logging
from dataclasses import dataclass, field
from typing import List

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from .errors import ExtractionFailed

logger = logging.getLogger(__name__)

SCANNED_PDF_MESSAGE = (
    "Unable to extract text from this PDF. It appears to be a scanned document "
    "or image-based PDF. Please upload a text-based PDF resume."
)


@dataclass(frozen=True)
class ExtractedText:
    """Text pulled out of a PDF plus page bookkeeping."""

    text: str
    num_pages: int
    warnings: List[str] = field(default_factory=list)


class TextExtractor:
    """Extract UTF-8 text from PDF bytes using pypdf."""

    def extract_sync(self, payload: bytes) -> ExtractedText:
        if not payload:
            raise ExtractionFailed("Empty file.")

        try:
            reader = PdfReader(io.BytesIO(payload))
            page_list = list(reader.pages)
        except (PyPdfError, ValueError, OSError) as exc:
            logger.warning(f"PDF parse error: {exc}")
            raise ExtractionFailed(f"Failed to read PDF: {exc}") from exc

        warnings: List[str] = []
        pages: List[str] = []
        for index, page in enumerate(page_list):
            try:
                text = page.extract_text() or ""
            except Exception as exc:  # pragma: no cover - depends on the PDF
                warnings.append(f"Failed to extract text from page {index + 1}: {exc}")
                text = ""
            if not text.strip():
                warnings.append(f"Page {index + 1} appears empty.")
            pages.append(text)

        text = "\n\n".join(pages)
        if not text.strip():
            raise ExtractionFailed(
                SCANNED_PDF_MESSAGE, details={"numPages": len(page_list)}
            )

        logger.debug(f"Extracted chars={len(text)} pages={len(page_list)}")
        return ExtractedText(text=text, num_pages=len(page_list), warnings=warnings)

    async def extract(self, payload: bytes) -> ExtractedText:
        """Run the blocking pypdf parse off the event loop."""
        return await asyncio.to_thread(self.extract_sync, payload)

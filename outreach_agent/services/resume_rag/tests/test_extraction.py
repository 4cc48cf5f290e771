from __future__ import annotations

import asyncio
import io

import pytest
from pypdf import PdfWriter

from outreach_agent.services.resume_rag.errors import ExtractionFailed
from outreach_agent.services.resume_rag.extraction import SCANNED_PDF_MESSAGE, TextExtractor


def _blank_pdf(pages: int = 1) -> bytes:
    writer = PdfWriter()
    for _ in range(pages):
        writer.add_blank_page(width=612, height=792)
    buffer = io.BytesIO()
    writer.write(buffer)
    return buffer.getvalue()


def test_empty_payload_fails() -> None:
    with pytest.raises(ExtractionFailed, match="Empty file"):
        TextExtractor().extract_sync(b"")


def test_corrupt_payload_fails() -> None:
    with pytest.raises(ExtractionFailed) as excinfo:
        asyncio.run(TextExtractor().extract(b"this is not a pdf at all"))

    assert excinfo.value.step == "extraction"


def test_image_only_pdf_reports_scanned_document() -> None:
    with pytest.raises(ExtractionFailed) as excinfo:
        TextExtractor().extract_sync(_blank_pdf(pages=2))

    assert excinfo.value.message == SCANNED_PDF_MESSAGE
    assert excinfo.value.details == {"numPages": 2}

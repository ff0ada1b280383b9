from __future__ import annotations

from typing import Protocol, runtime_checkable


@runtime_checkable
class PdfReaderPort(Protocol):
    def page_count(self, pdf_bytes: bytes) -> int:
        """Return the number of pages, or 1 when the PDF cannot be read."""

    def extract_text(self, pdf_bytes: bytes) -> str:
        """Return the embedded text layer of the PDF."""

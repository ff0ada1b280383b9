from __future__ import annotations

import io
import logging

from pdfminer.high_level import extract_text
from pdfminer.pdfpage import PDFPage

from signed_recon.ports.pdf_reader_port import PdfReaderPort

logger = logging.getLogger(__name__)


class PdfMinerReader(PdfReaderPort):
    def page_count(self, pdf_bytes: bytes) -> int:
        try:
            count = sum(1 for _ in PDFPage.get_pages(io.BytesIO(pdf_bytes)))
        except Exception:
            logger.warning("Could not read page count, assuming a single page", exc_info=True)
            return 1
        return max(1, count)

    def extract_text(self, pdf_bytes: bytes) -> str:
        try:
            return extract_text(io.BytesIO(pdf_bytes)) or ""
        except Exception as exc:
            raise RuntimeError("Failed to extract PDF text layer.") from exc

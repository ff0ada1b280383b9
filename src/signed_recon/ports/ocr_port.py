from __future__ import annotations

from typing import Protocol

from signed_recon.domain.models import OcrRequest, OcrResponse


class OCRPort(Protocol):
    def read_work_order_number(self, request: OcrRequest) -> OcrResponse:
        """OCR the request's crop zone and return the work order number reading."""

from __future__ import annotations

import logging

import requests

from signed_recon.domain.models import OcrRequest, OcrResponse
from signed_recon.ports.ocr_port import OCRPort
from signed_recon.settings import OCR_REQUEST_TIMEOUT, SIGNED_OCR_SERVICE_URL

logger = logging.getLogger(__name__)


class SignedOcrHttpAdapter(OCRPort):
    """Client for the work order number OCR microservice."""

    _ENDPOINT = "/v1/ocr/workorder-number/upload"

    def __init__(self, base_url: str | None = None, timeout: float | None = None) -> None:
        base_url = base_url if base_url is not None else SIGNED_OCR_SERVICE_URL
        if not base_url:
            raise RuntimeError(
                "SIGNED_OCR_SERVICE_URL is not set. Point it at the OCR service base URL."
            )
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout if timeout is not None else OCR_REQUEST_TIMEOUT

    def read_work_order_number(self, request: OcrRequest) -> OcrResponse:
        try:
            response = requests.post(
                f"{self._base_url}{self._ENDPOINT}",
                data=request.form_fields(),
                files={
                    "file": (
                        request.filename or "signed-work-order.pdf",
                        request.pdf_bytes,
                        "application/pdf",
                    )
                },
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise RuntimeError("Failed to reach the signed OCR service.") from exc
        if response.status_code >= 400:
            raise RuntimeError(
                f"Signed OCR service failed with status {response.status_code}: "
                f"{response.text[:500]}"
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise RuntimeError("Failed to parse OCR service response.") from exc
        if not isinstance(payload, dict):
            raise RuntimeError("OCR service response must be a JSON object.")

        wo_number = payload.get("workOrderNumber")
        return OcrResponse(
            wo_number=str(wo_number) if wo_number is not None else None,
            raw_text=payload.get("rawText") or "",
            confidence_raw=self._coerce_confidence(payload.get("confidence")),
            snippet_image_url=payload.get("snippetImageUrl") or None,
        )

    @staticmethod
    def _coerce_confidence(value: object) -> float:
        if isinstance(value, bool):
            return 0.0
        if isinstance(value, (int, float)):
            number = float(value)
        elif isinstance(value, str):
            try:
                number = float(value)
            except ValueError:
                logger.warning("OCR confidence %r is not a number, using 0", value)
                return 0.0
        else:
            logger.warning("OCR confidence %r is not a number, using 0", value)
            return 0.0
        if number != number:
            return 0.0
        return max(0.0, min(1.0, number))

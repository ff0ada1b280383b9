from __future__ import annotations

import logging

from signed_recon.domain.candidates import digits_only, is_plausible_work_order_number
from signed_recon.domain.crop import Crop, PercentCrop, expand_crop
from signed_recon.domain.models import OcrAttempt, OcrRequest, OrchestrationResult
from signed_recon.ports.ocr_port import OCRPort
from signed_recon.settings import OCR_RETRY_CONFIDENCE

logger = logging.getLogger(__name__)


def rank_attempt(attempt: OcrAttempt) -> tuple[bool, float]:
    """Sort key for attempts: a plausible number first, then confidence."""

    return (
        is_plausible_work_order_number(attempt.extracted_wo_number),
        attempt.confidence,
    )


def pick_best_attempt(attempts: list[OcrAttempt]) -> int:
    """Return the index of the best attempt; ties keep the earlier one."""

    if not attempts:
        raise ValueError("No OCR attempts to choose from")
    best_index = 0
    for index in range(1, len(attempts)):
        if rank_attempt(attempts[index]) > rank_attempt(attempts[best_index]):
            best_index = index
    return best_index


def compute_pass_agreement(attempts: list[OcrAttempt], expected_digits: int) -> bool:
    """True when at least two reads of the expected length agree on one number."""

    numbers = [
        digits_only(attempt.extracted_wo_number or "") for attempt in attempts
    ]
    numbers = [number for number in numbers if len(number) == expected_digits]
    return len(numbers) >= 2 and len(set(numbers)) == 1


def alternate_page_for(page: int, page_count: int) -> int | None:
    if page_count < 2:
        return None
    if page_count == 2:
        candidate = 2 if page == 1 else 1
    elif page > 1:
        candidate = page - 1
    else:
        candidate = 2
    if candidate == page or not 1 <= candidate <= page_count:
        return None
    return candidate


class OcrRetryOrchestrator:
    """Run up to three OCR calls for one document and keep the best reading.

    Attempt 1 reads the configured crop. A weak result (low confidence or an
    implausible number) triggers attempt 2 with the crop padded on all sides.
    If the best reading is still weak on a multi-page document, attempt 3
    reads the same crop on a neighbouring page. Calls are strictly
    sequential and OCR errors propagate to the caller.
    """

    def __init__(self, ocr: OCRPort, retry_confidence: float | None = None) -> None:
        self._ocr = ocr
        self._retry_confidence = (
            OCR_RETRY_CONFIDENCE if retry_confidence is None else retry_confidence
        )

    def run(
        self,
        pdf_bytes: bytes,
        filename: str,
        template_id: str,
        page: int,
        page_count: int,
        dpi: int,
        crop: Crop,
        expected_digits: int,
    ) -> OrchestrationResult:
        attempts: list[OcrAttempt] = []
        first = self._attempt(pdf_bytes, filename, template_id, page, dpi, crop)
        attempts.append(first)

        retry_attempted = False
        if self._is_weak(first):
            retry_attempted = True
            attempts.append(
                self._attempt(
                    pdf_bytes,
                    filename,
                    template_id,
                    page,
                    dpi,
                    expand_crop(crop),
                    is_retry=True,
                )
            )

        alternate_page_attempted = False
        best_so_far = attempts[pick_best_attempt(attempts)]
        alternate = alternate_page_for(page, page_count)
        if alternate is not None and self._is_weak(best_so_far):
            alternate_page_attempted = True
            attempts.append(
                self._attempt(
                    pdf_bytes,
                    filename,
                    template_id,
                    alternate,
                    dpi,
                    crop,
                    is_alternate_page=True,
                )
            )

        best_index = pick_best_attempt(attempts)
        result = OrchestrationResult(
            attempts=attempts,
            best_index=best_index,
            pass_agreement=compute_pass_agreement(attempts, expected_digits),
            retry_attempted=retry_attempted,
            alternate_page_attempted=alternate_page_attempted,
        )
        logger.info(
            "OCR picked attempt %d of %d (page %d, confidence %.2f, number %s, agreement %s)",
            best_index + 1,
            len(attempts),
            result.best.page,
            result.best.confidence,
            result.best.extracted_wo_number,
            result.pass_agreement,
        )
        return result

    def read_once(
        self,
        pdf_bytes: bytes,
        filename: str,
        template_id: str,
        page: int,
        dpi: int,
        crop: Crop,
    ) -> OcrAttempt:
        """Single OCR call without retries."""

        return self._attempt(pdf_bytes, filename, template_id, page, dpi, crop)

    def _is_weak(self, attempt: OcrAttempt) -> bool:
        return attempt.confidence < self._retry_confidence or not is_plausible_work_order_number(
            attempt.extracted_wo_number
        )

    def _attempt(
        self,
        pdf_bytes: bytes,
        filename: str,
        template_id: str,
        page: int,
        dpi: int,
        crop: Crop,
        is_retry: bool = False,
        is_alternate_page: bool = False,
    ) -> OcrAttempt:
        if isinstance(crop, PercentCrop):
            request = OcrRequest(
                pdf_bytes=pdf_bytes,
                filename=filename,
                template_id=template_id,
                page=page,
                dpi=dpi,
                region=crop,
            )
        else:
            request = OcrRequest(
                pdf_bytes=pdf_bytes,
                filename=filename,
                template_id=template_id,
                page=page,
                dpi=dpi,
                points=crop,
            )
        response = self._ocr.read_work_order_number(request)
        attempt = OcrAttempt(
            page=page,
            confidence=response.confidence_raw or 0.0,
            extracted_wo_number=response.wo_number,
            raw_text=response.raw_text or "",
            snippet_image=response.snippet_image_url,
            region_used=crop,
            is_retry=is_retry,
            is_alternate_page=is_alternate_page,
        )
        logger.info(
            "OCR attempt page=%d confidence=%.2f number=%s retry=%s alternate=%s",
            attempt.page,
            attempt.confidence,
            attempt.extracted_wo_number,
            is_retry,
            is_alternate_page,
        )
        return attempt

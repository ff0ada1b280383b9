from __future__ import annotations

import base64
import logging
import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import asdict

from signed_recon.domain.candidates import (
    extract_candidates_from_text,
    is_plausible_work_order_number,
    normalize_candidates,
)
from signed_recon.domain.crop import (
    Crop,
    CropError,
    PointsCrop,
    pixel_crop,
    render_size_px,
    resolve_crop,
    sanitize_dpi,
    validate_crop,
)
from signed_recon.domain.decision import decide
from signed_recon.domain.models import (
    DecisionResult,
    DecisionState,
    ExtractionMethod,
    ExtractionSignals,
    OrchestrationResult,
    ProcessMode,
    ProcessRequest,
    ProcessResult,
    TemplateConfig,
)
from signed_recon.domain.reasons import ReviewReason, confidence_label
from signed_recon.domain.senders import normalize_sender_key
from signed_recon.ports.drive_port import DrivePort
from signed_recon.ports.ocr_port import OCRPort
from signed_recon.ports.pdf_reader_port import PdfReaderPort
from signed_recon.ports.storage_port import StoragePort
from signed_recon.services.dedup_service import DedupGuard
from signed_recon.services.ocr_orchestrator import OcrRetryOrchestrator
from signed_recon.services.reconciliation_service import ReconciliationRouter, RoutingInput
from signed_recon.settings import (
    DEFAULT_DPI,
    PROCESS_WORKERS,
    SEQ_MAX_FORWARD_JUMP,
    SIGNED_DRIVE_FOLDER_NAME,
    SNIPPETS_DRIVE_FOLDER_NAME,
)

logger = logging.getLogger(__name__)

_CROP_REVIEW_REASONS = {
    CropError.NOT_CONFIGURED: ReviewReason.TEMPLATE_NOT_CONFIGURED,
    CropError.INVALID: ReviewReason.INVALID_CROP,
    CropError.TOO_SMALL: ReviewReason.CROP_TOO_SMALL,
}

DIGITAL_TEXT_CONFIDENCE = 1.0


class SignedDocumentProcessor:
    """End-to-end pipeline for one signed work order PDF.

    dedup -> template and crop -> digital text or OCR retries -> trust
    decision -> match or review. Configuration and quality problems end in a
    review record; OCR and upload failures raise.
    """

    def __init__(
        self,
        storage: StoragePort,
        drive: DrivePort,
        ocr: OCRPort,
        pdf_reader: PdfReaderPort,
        retry_confidence: float | None = None,
        max_forward_jump: int | None = None,
        workers: int | None = None,
        signed_folder_name: str | None = None,
        snippets_folder_name: str | None = None,
    ) -> None:
        self._storage = storage
        self._drive = drive
        self._pdf_reader = pdf_reader
        self._dedup = DedupGuard(storage)
        self._orchestrator = OcrRetryOrchestrator(ocr, retry_confidence=retry_confidence)
        self._router = ReconciliationRouter(
            storage, drive, signed_folder_name=signed_folder_name or SIGNED_DRIVE_FOLDER_NAME
        )
        self._max_forward_jump = (
            max_forward_jump if max_forward_jump is not None else SEQ_MAX_FORWARD_JUMP
        )
        self._workers = workers if workers is not None else PROCESS_WORKERS
        self._snippets_folder_name = snippets_folder_name or SNIPPETS_DRIVE_FOLDER_NAME

    def process(self, request: ProcessRequest) -> ProcessResult:
        file_hash = self._dedup.compute_file_hash(request.pdf_bytes)
        sender_key = normalize_sender_key(request.sender_key)
        logger.info(
            "Processing signed PDF %s for %s (%d bytes, request %s)",
            request.filename,
            sender_key,
            len(request.pdf_bytes),
            request.request_id,
        )

        dedup = self._dedup.check_already_processed(file_hash)
        if dedup.exists:
            return ProcessResult(
                mode=ProcessMode.ALREADY_PROCESSED,
                file_hash=file_hash,
                sender_key=sender_key,
                found_in=dedup.found_in,
            )

        template = self._storage.get_template(sender_key)
        if template is None:
            return self._configuration_review(
                request, file_hash, sender_key, ReviewReason.TEMPLATE_NOT_FOUND, None
            )
        crop = resolve_crop(template)
        crop_error = validate_crop(crop)
        if crop_error is not None:
            return self._configuration_review(
                request, file_hash, sender_key, _CROP_REVIEW_REASONS[crop_error], template
            )

        page = self._effective_page(request, template)
        dpi = sanitize_dpi(template.dpi, DEFAULT_DPI)
        page_count = self._pdf_reader.page_count(request.pdf_bytes)
        if page > page_count:
            return self._configuration_review(
                request,
                file_hash,
                sender_key,
                ReviewReason.PAGE_MISMATCH,
                template,
                message=f"Template page {page} is past the last page ({page_count}).",
            )

        rule = template.rule()
        last_known = self._storage.last_matched_work_order_number(sender_key)
        digital_text = self._read_digital_text(request.pdf_bytes)
        digital_candidates = [
            candidate
            for candidate in normalize_candidates(
                extract_candidates_from_text(digital_text, rule.expected_digits)
            )
            if len(candidate) == rule.expected_digits
        ]

        orchestration: OrchestrationResult | None = None
        snippet_image: str | None = None
        if digital_candidates:
            signals = ExtractionSignals(
                extraction_method=ExtractionMethod.DIGITAL_TEXT,
                last_known_work_order_number=last_known,
            )
            decision = decide(
                digital_candidates,
                rule,
                signals,
                raw_text=digital_text,
                max_forward_jump=self._max_forward_jump,
            )
            raw_text = digital_text
            ocr_number = decision.best_candidate
            confidence = DIGITAL_TEXT_CONFIDENCE
            chosen_page = page
        else:
            orchestration = self._orchestrator.run(
                request.pdf_bytes,
                request.filename,
                template.template_id,
                page,
                page_count,
                dpi,
                crop,
                rule.expected_digits,
            )
            best = orchestration.best
            signals = ExtractionSignals(
                extraction_method=ExtractionMethod.OCR,
                confidence_raw=best.confidence,
                pass_agreement=orchestration.pass_agreement,
                last_known_work_order_number=last_known,
            )
            decision = decide(
                [best.extracted_wo_number] if best.extracted_wo_number else [],
                rule,
                signals,
                raw_text=best.raw_text,
                max_forward_jump=self._max_forward_jump,
            )
            raw_text = best.raw_text or digital_text
            ocr_number = best.extracted_wo_number
            confidence = best.confidence
            chosen_page = best.page
            snippet_image = best.snippet_image

        self._log_decision(sender_key, request.filename, signals, decision)

        plausible = is_plausible_work_order_number(ocr_number)
        effective_confidence = confidence if plausible else 0.0
        effective_number = (
            (request.work_order_override or "").strip()
            or decision.best_candidate
            or (ocr_number.strip() if plausible and ocr_number else "")
            or None
        )

        # Text-layer reads carry no image, and reviewers need one.
        if orchestration is None and decision.state != DecisionState.AUTO_CONFIRMED:
            snippet_image = self._snippet_for_review(request, template, chosen_page, dpi, crop)
        snippet_url = self._upload_snippet(snippet_image, sender_key, effective_number)

        outcome = self._router.route(
            RoutingInput(
                file_hash=file_hash,
                sender_key=sender_key,
                filename=request.filename,
                pdf_bytes=request.pdf_bytes,
                decision=decision,
                signals=signals,
                work_order_number=effective_number,
                effective_confidence=effective_confidence,
                raw_text=raw_text,
                snippet_url=snippet_url,
                manual_override=request.work_order_override,
                ocr_number_implausible=bool(ocr_number) and not plausible,
                retry_attempted=bool(orchestration and orchestration.retry_attempted),
                alternate_page_attempted=bool(
                    orchestration and orchestration.alternate_page_attempted
                ),
                page_count=page_count,
                source_metadata=self._source_metadata(request),
            )
        )

        attempted_pages = orchestration.attempted_pages if orchestration else [page]
        return ProcessResult(
            mode=outcome.mode,
            file_hash=file_hash,
            sender_key=sender_key,
            work_order_number=effective_number,
            reason=outcome.reason,
            decision=decision,
            confidence=effective_confidence,
            confidence_label=confidence_label(effective_confidence),
            storage_url=outcome.storage_url,
            snippet_url=snippet_url,
            job_id=outcome.job.job_id if outcome.job else None,
            match_id=outcome.match.match_id if outcome.match else None,
            retry_attempted=bool(orchestration and orchestration.retry_attempted),
            alternate_page_attempted=bool(
                orchestration and orchestration.alternate_page_attempted
            ),
            attempted_pages=",".join(str(item) for item in attempted_pages),
            chosen_page=chosen_page,
            chosen_attempt_index=orchestration.best_index if orchestration else 0,
            attempts=[attempt.summary() for attempt in orchestration.attempts]
            if orchestration
            else [],
            found_in=outcome.found_in,
            template_id=template.template_id,
            debug=self._debug_block(crop, dpi),
        )

    def process_batch(
        self,
        requests: list[ProcessRequest],
        progress_callback: Callable[[dict], None] | None = None,
    ) -> list[ProcessResult]:
        total = len(requests)
        run_mode = "serial" if self._workers <= 1 or total <= 1 else "parallel"
        self._emit_progress(progress_callback, stage="start", mode=run_mode, total=total)
        results: list[ProcessResult | None] = [None] * total
        if run_mode == "serial":
            for index, request in enumerate(requests):
                results[index] = self._process_isolated(request)
                self._emit_document_done(progress_callback, index, total, results[index])
        else:
            with ThreadPoolExecutor(max_workers=self._workers) as executor:
                future_map = {
                    executor.submit(self._process_isolated, request): index
                    for index, request in enumerate(requests)
                }
                for future in as_completed(future_map):
                    index = future_map[future]
                    results[index] = future.result()
                    self._emit_document_done(progress_callback, index, total, results[index])
        failed = sum(1 for result in results if result and result.mode == ProcessMode.FAILED)
        self._emit_progress(
            progress_callback,
            stage="complete",
            total=total,
            processed=total - failed,
            failed=failed,
        )
        return [result for result in results if result is not None]

    def _process_isolated(self, request: ProcessRequest) -> ProcessResult:
        try:
            return self.process(request)
        except Exception as exc:
            logger.exception("Failed to process %s (request %s)", request.filename, request.request_id)
            file_hash = self._dedup.compute_file_hash(request.pdf_bytes)
            sender_key = normalize_sender_key(request.sender_key)
            try:
                self._router.send_to_review(
                    file_hash,
                    sender_key,
                    ReviewReason.PROCESSING_FAILED,
                    message=str(exc),
                    manual_override=request.work_order_override,
                    source_metadata=self._source_metadata(request),
                )
            except RuntimeError:
                logger.exception("Failed to record processing failure for %s", request.filename)
            return ProcessResult(
                mode=ProcessMode.FAILED,
                file_hash=file_hash,
                sender_key=sender_key,
                reason=ReviewReason.PROCESSING_FAILED,
                error=str(exc),
            )

    def _configuration_review(
        self,
        request: ProcessRequest,
        file_hash: str,
        sender_key: str,
        reason: ReviewReason,
        template: TemplateConfig | None,
        message: str | None = None,
    ) -> ProcessResult:
        logger.warning("Template problem for %s: %s", sender_key, reason.value)
        self._router.send_to_review(
            file_hash,
            sender_key,
            reason,
            message=message,
            manual_override=request.work_order_override,
            source_metadata=self._source_metadata(request),
        )
        return ProcessResult(
            mode=ProcessMode.NEEDS_REVIEW,
            file_hash=file_hash,
            sender_key=sender_key,
            reason=reason,
            template_id=template.template_id if template else None,
        )

    @staticmethod
    def _effective_page(request: ProcessRequest, template: TemplateConfig) -> int:
        override = request.page_override
        if isinstance(override, int) and not isinstance(override, bool) and override >= 1:
            return override
        return max(1, template.page or 1)

    def _read_digital_text(self, pdf_bytes: bytes) -> str:
        try:
            return self._pdf_reader.extract_text(pdf_bytes)
        except RuntimeError:
            logger.info("No readable text layer, falling back to OCR", exc_info=True)
            return ""

    def _snippet_for_review(
        self,
        request: ProcessRequest,
        template: TemplateConfig,
        page: int,
        dpi: int,
        crop: Crop,
    ) -> str | None:
        try:
            attempt = self._orchestrator.read_once(
                request.pdf_bytes, request.filename, template.template_id, page, dpi, crop
            )
        except RuntimeError:
            logger.warning("Could not render a review snippet", exc_info=True)
            return None
        return attempt.snippet_image

    def _upload_snippet(
        self, data_url: str | None, sender_key: str, work_order_number: str | None
    ) -> str | None:
        if not data_url:
            return None
        _, _, encoded = data_url.partition(",")
        if not encoded:
            return None
        filename = "-".join(
            [
                "snippet",
                sender_key or "unknown",
                work_order_number or "no-wo",
                str(int(time.time() * 1000)),
            ]
        )
        try:
            png_bytes = base64.b64decode(encoded, validate=True)
            return self._drive.upload_png(
                self._snippets_folder_name, f"{filename}.png", png_bytes
            )
        except (RuntimeError, ValueError):
            logger.warning("Snippet upload failed for %s", filename, exc_info=True)
            return None

    @staticmethod
    def _debug_block(crop: Crop, dpi: int) -> dict:
        debug: dict = {"dpi": dpi, "crop": asdict(crop)}
        if isinstance(crop, PointsCrop):
            width_px, height_px = render_size_px(crop.page_width_pt, crop.page_height_pt, dpi)
            debug["render_width_px"] = round(width_px)
            debug["render_height_px"] = round(height_px)
            debug["crop_px"] = asdict(pixel_crop(crop, width_px, height_px))
        return debug

    @staticmethod
    def _source_metadata(request: ProcessRequest) -> dict:
        return {
            **request.source_metadata,
            "filename": request.filename,
            "request_id": request.request_id,
        }

    @staticmethod
    def _log_decision(
        sender_key: str,
        filename: str,
        signals: ExtractionSignals,
        decision: DecisionResult,
    ) -> None:
        logger.info(
            "Decision for %s/%s: method=%s state=%s score=%d reasons=%s candidates=%s",
            sender_key,
            filename,
            signals.extraction_method.value,
            decision.state.value,
            decision.trust_score,
            decision.reasons_text,
            decision.candidates_text,
        )

    def _emit_document_done(
        self,
        callback: Callable[[dict], None] | None,
        index: int,
        total: int,
        result: ProcessResult | None,
    ) -> None:
        if result is None:
            return
        self._emit_progress(
            callback,
            stage="document_failed" if result.mode == ProcessMode.FAILED else "document_done",
            index=index + 1,
            total=total,
            mode=result.mode.value,
            file_hash=result.file_hash,
            work_order_number=result.work_order_number,
        )

    @staticmethod
    def _emit_progress(
        callback: Callable[[dict], None] | None,
        **payload: object,
    ) -> None:
        if callback is None:
            return
        callback(dict(payload))

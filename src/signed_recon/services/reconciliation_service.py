from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from uuid import uuid4

from signed_recon.domain.models import (
    DecisionResult,
    DecisionState,
    ExtractionMethod,
    ExtractionSignals,
    JobRecord,
    MatchConflictError,
    MatchRecord,
    NeedsReviewRecord,
    ProcessMode,
    SignedDocumentRecord,
)
from signed_recon.domain.reasons import ReasonCode, ReviewReason, confidence_label
from signed_recon.domain.senders import sender_key_mismatch
from signed_recon.ports.drive_port import DrivePort
from signed_recon.ports.storage_port import StoragePort
from signed_recon.settings import SIGNED_DRIVE_FOLDER_NAME

logger = logging.getLogger(__name__)

JOB_STATUS_SIGNED = "SIGNED"


@dataclass
class RoutingInput:
    """Everything the router needs about one decided document."""

    file_hash: str
    sender_key: str
    filename: str
    pdf_bytes: bytes
    decision: DecisionResult
    signals: ExtractionSignals
    work_order_number: str | None
    effective_confidence: float
    raw_text: str = ""
    snippet_url: str | None = None
    manual_override: str | None = None
    ocr_number_implausible: bool = False
    retry_attempted: bool = False
    alternate_page_attempted: bool = False
    page_count: int = 1
    source_metadata: dict = field(default_factory=dict)


@dataclass
class RoutingOutcome:
    mode: ProcessMode
    reason: ReviewReason | None = None
    job: JobRecord | None = None
    match: MatchRecord | None = None
    review: NeedsReviewRecord | None = None
    document: SignedDocumentRecord | None = None
    storage_url: str | None = None
    found_in: str | None = None


def review_reason_for_decision(
    decision: DecisionResult,
    ocr_number_implausible: bool = False,
    retry_attempted: bool = False,
    alternate_page_attempted: bool = False,
    page_count: int = 1,
) -> ReviewReason | None:
    """Map an untrusted decision to a review category; None when trusted enough."""

    if decision.state != DecisionState.NEEDS_ATTENTION:
        return None
    if ReasonCode.NO_CANDIDATE in decision.reasons:
        if alternate_page_attempted and page_count >= 2:
            return ReviewReason.PAGE_MISMATCH
        return ReviewReason.NO_WORK_ORDER_NUMBER
    if ReasonCode.FORMAT_MISMATCH in decision.reasons:
        if ocr_number_implausible:
            return ReviewReason.INVALID_WORK_ORDER_NUMBER
        return ReviewReason.FORMAT_MISMATCH
    if ReasonCode.MULTIPLE_CANDIDATES in decision.reasons:
        return ReviewReason.MULTIPLE_CANDIDATES
    if retry_attempted:
        return ReviewReason.LOW_CONFIDENCE_AFTER_RETRY
    return ReviewReason.LOW_TRUST


class ReconciliationRouter:
    """Write a confirmed match or a needs-review record, never both.

    Only a trusted decision (AUTO_CONFIRMED or QUICK_CHECK) for an existing,
    unmatched job of the same sender reaches the match path. That path is the
    only one that uploads the PDF to long-term storage.
    """

    def __init__(
        self,
        storage: StoragePort,
        drive: DrivePort,
        signed_folder_name: str | None = None,
    ) -> None:
        self._storage = storage
        self._drive = drive
        self._signed_folder_name = signed_folder_name or SIGNED_DRIVE_FOLDER_NAME

    def route(self, item: RoutingInput) -> RoutingOutcome:
        reason = review_reason_for_decision(
            item.decision,
            ocr_number_implausible=item.ocr_number_implausible,
            retry_attempted=item.retry_attempted,
            alternate_page_attempted=item.alternate_page_attempted,
            page_count=item.page_count,
        )
        if reason is not None:
            return self._to_review(item, reason)

        job = None
        if item.work_order_number:
            job = self._storage.find_job_by_work_order_number(item.work_order_number)
        if job is None:
            return self._to_review(item, ReviewReason.NO_MATCHING_JOB)
        if sender_key_mismatch(job, item.sender_key):
            logger.warning(
                "Sender %s does not own job %s (job sender %s, issuer %s)",
                item.sender_key,
                job.job_id,
                job.sender_key,
                job.issuer,
            )
            return self._to_review(item, ReviewReason.SENDER_KEY_MISMATCH, job=job)
        existing = self._storage.find_match_by_job(job.job_id)
        if existing is not None:
            document = self._storage.get_signed_document_by_hash(item.file_hash)
            if document is not None and document.document_id == existing.document_id:
                return self._already_processed(job, existing, document)
            return self._to_review(item, ReviewReason.ALREADY_MATCHED, job=job)

        storage_url = self._drive.upload_pdf(
            self._signed_folder_name,
            f"{item.file_hash}-{item.filename or 'signed-work-order.pdf'}",
            item.pdf_bytes,
        )
        document = self._save_document(item, storage_url)
        try:
            match = self._storage.create_match(self._match_record(item, job, document))
        except MatchConflictError:
            logger.info("Lost the race to match job %s", job.job_id)
            existing = self._storage.find_match_by_job(job.job_id)
            if existing is not None and existing.document_id == document.document_id:
                return self._already_processed(job, existing, document)
            outcome = self._to_review(item, ReviewReason.ALREADY_MATCHED, job=job)
            outcome.storage_url = storage_url
            return outcome

        label = confidence_label(item.effective_confidence)
        signed_at = datetime.now(timezone.utc).isoformat()
        self._storage.update_job_status(
            job.job_id,
            status=JOB_STATUS_SIGNED,
            signed_url=storage_url,
            confidence=label,
            signed_at=signed_at,
        )
        job.status = JOB_STATUS_SIGNED
        job.signed_url = storage_url
        job.confidence = label
        job.signed_at = signed_at
        logger.info(
            "Matched work order %s to job %s (state %s, score %d)",
            item.work_order_number,
            job.job_id,
            item.decision.state.value,
            item.decision.trust_score,
        )
        return RoutingOutcome(
            mode=ProcessMode.MATCHED,
            job=job,
            match=match,
            document=document,
            storage_url=storage_url,
        )

    def send_to_review(
        self,
        file_hash: str,
        sender_key: str,
        reason: ReviewReason,
        message: str | None = None,
        raw_text: str = "",
        manual_override: str | None = None,
        source_metadata: dict | None = None,
    ) -> NeedsReviewRecord:
        """Append a review record for a document that never reached a decision."""

        record = NeedsReviewRecord(
            file_hash=file_hash,
            sender_key=sender_key,
            reason=reason,
            raw_text=raw_text,
            manual_override=manual_override,
            message=message,
            source_metadata=dict(source_metadata or {}),
        )
        stored = self._storage.append_needs_review(record)
        logger.info("Sent %s to review: %s", file_hash[:12], reason.value)
        return stored

    def _to_review(
        self,
        item: RoutingInput,
        reason: ReviewReason,
        job: JobRecord | None = None,
    ) -> RoutingOutcome:
        document = self._save_document(item, storage_url=None)
        is_ocr = item.signals.extraction_method == ExtractionMethod.OCR
        record = NeedsReviewRecord(
            file_hash=item.file_hash,
            sender_key=item.sender_key,
            reason=reason,
            raw_text=item.raw_text,
            confidence=item.effective_confidence,
            candidates=list(item.decision.normalized_candidates),
            chosen_candidate=item.decision.best_candidate,
            trust_score=item.decision.trust_score,
            decision_state=item.decision.state.value,
            decision_reasons=item.decision.reasons_text,
            extraction_method=item.signals.extraction_method.value,
            confidence_raw=item.signals.confidence_raw if is_ocr else None,
            pass_agreement=item.signals.pass_agreement if is_ocr else None,
            manual_override=item.manual_override,
            snippet_url=item.snippet_url,
            source_metadata=dict(item.source_metadata),
        )
        stored = self._storage.append_needs_review(record)
        logger.info(
            "Sent %s to review: %s (state %s, score %d)",
            item.file_hash[:12],
            reason.value,
            item.decision.state.value,
            item.decision.trust_score,
        )
        return RoutingOutcome(
            mode=ProcessMode.NEEDS_REVIEW,
            reason=reason,
            job=job,
            review=stored,
            document=document,
        )

    @staticmethod
    def _already_processed(
        job: JobRecord, match: MatchRecord, document: SignedDocumentRecord
    ) -> RoutingOutcome:
        # The same file already owns this job's match.
        logger.info(
            "File %s already matched to job %s", document.file_hash[:12], job.job_id
        )
        return RoutingOutcome(
            mode=ProcessMode.ALREADY_PROCESSED,
            job=job,
            match=match,
            document=document,
            storage_url=document.storage_url,
            found_in="CONFIRMED",
        )

    def _save_document(
        self, item: RoutingInput, storage_url: str | None
    ) -> SignedDocumentRecord:
        return self._storage.save_signed_document(
            SignedDocumentRecord(
                document_id=str(uuid4()),
                file_hash=item.file_hash,
                sender_key=item.sender_key,
                extraction_method=item.signals.extraction_method.value,
                storage_url=storage_url,
                extraction_confidence=item.effective_confidence,
                extraction_rationale=item.decision.reasons_text,
                work_order_number=item.work_order_number,
                source_metadata=dict(item.source_metadata),
            )
        )

    @staticmethod
    def _match_record(
        item: RoutingInput, job: JobRecord, document: SignedDocumentRecord
    ) -> MatchRecord:
        is_ocr = item.signals.extraction_method == ExtractionMethod.OCR
        return MatchRecord(
            match_id=str(uuid4()),
            job_id=job.job_id,
            document_id=document.document_id,
            decision_state=item.decision.state.value,
            trust_score=item.decision.trust_score,
            decision_reasons=item.decision.reasons_text,
            candidates=item.decision.candidates_text,
            extraction_method=item.signals.extraction_method.value,
            confidence_raw=item.signals.confidence_raw if is_ocr else None,
            pass_agreement=item.signals.pass_agreement if is_ocr else None,
            chosen_candidate=item.work_order_number,
        )

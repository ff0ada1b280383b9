from __future__ import annotations

from typing import Protocol

from signed_recon.domain.models import (
    DedupResult,
    JobRecord,
    MatchRecord,
    NeedsReviewRecord,
    SignedDocumentRecord,
    TemplateConfig,
)


class StoragePort(Protocol):
    def find_processed_file(self, file_hash: str) -> DedupResult:
        """Return whether a file hash was already matched or sent to review."""

    def save_signed_document(self, record: SignedDocumentRecord) -> SignedDocumentRecord:
        """Persist a signed document; an existing hash returns the stored record."""

    def get_signed_document_by_hash(self, file_hash: str) -> SignedDocumentRecord | None:
        """Return a signed document by file hash, or None if missing."""

    def create_job(
        self,
        work_order_number: str,
        sender_key: str | None = None,
        issuer: str | None = None,
    ) -> JobRecord:
        """Create and persist an open job."""

    def get_job(self, job_id: str) -> JobRecord | None:
        """Return a job by id, or None if missing."""

    def find_job_by_work_order_number(self, work_order_number: str) -> JobRecord | None:
        """Return the job for a work order number, or None if missing."""

    def update_job_status(
        self,
        job_id: str,
        status: str,
        signed_url: str | None,
        confidence: str | None,
        signed_at: str | None,
    ) -> None:
        """Update status and signed-document fields for a job."""

    def last_matched_work_order_number(self, sender_key: str) -> str | None:
        """Return the highest matched work order number for a sender."""

    def find_match_by_job(self, job_id: str) -> MatchRecord | None:
        """Return the match for a job, or None if missing."""

    def create_match(self, record: MatchRecord) -> MatchRecord:
        """Persist a match; raise MatchConflictError if either side is taken."""

    def append_needs_review(self, record: NeedsReviewRecord) -> NeedsReviewRecord:
        """Append a review record; a repeated dedupe key returns the stored one."""

    def list_needs_review(self, sender_key: str | None = None) -> list[NeedsReviewRecord]:
        """Return review records, newest first."""

    def get_template(self, sender_key: str) -> TemplateConfig | None:
        """Return the template for a sender key, or None if missing."""

    def save_template(self, template: TemplateConfig) -> TemplateConfig:
        """Insert or update the template for a sender key."""

    def list_templates(self) -> list[TemplateConfig]:
        """Return all templates ordered by sender key."""

    def count_templates(self) -> int:
        """Return count of templates."""

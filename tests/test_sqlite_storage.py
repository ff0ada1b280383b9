import pytest

from signed_recon.adapters.sqlite_storage import SQLiteStorage
from signed_recon.domain.models import (
    MatchConflictError,
    MatchRecord,
    NeedsReviewRecord,
    SignedDocumentRecord,
    TemplateConfig,
)
from signed_recon.domain.reasons import ReviewReason


def _document(file_hash: str, document_id: str, sender_key="acme_fm", storage_url=None):
    return SignedDocumentRecord(
        document_id=document_id,
        file_hash=file_hash,
        sender_key=sender_key,
        extraction_method="OCR",
        storage_url=storage_url,
        extraction_confidence=0.9,
        source_metadata={"filename": "a.pdf"},
    )


def _match(job_id: str, document_id: str, match_id="") -> MatchRecord:
    return MatchRecord(
        match_id=match_id,
        job_id=job_id,
        document_id=document_id,
        decision_state="AUTO_CONFIRMED",
        trust_score=85,
        decision_reasons="OK_FORMAT|DIGITAL_TEXT_STRONG",
        candidates="1234567",
        extraction_method="DIGITAL_TEXT",
        chosen_candidate="1234567",
    )


def test_save_signed_document_is_idempotent_by_hash(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))

    first = storage.save_signed_document(
        _document("hash-1", "doc-1", storage_url="https://drive/1")
    )
    second = storage.save_signed_document(_document("hash-1", "doc-2"))

    assert first.document_id == "doc-1"
    assert second.document_id == "doc-1"
    assert second.storage_url == "https://drive/1"
    assert second.source_metadata == {"filename": "a.pdf"}


def test_find_processed_file_sources(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    assert not storage.find_processed_file("hash-1").exists

    review = storage.append_needs_review(
        NeedsReviewRecord(
            file_hash="hash-1", sender_key="acme_fm", reason=ReviewReason.LOW_TRUST
        )
    )
    found = storage.find_processed_file("hash-1")
    assert found.exists
    assert found.found_in == "REVIEW"
    assert found.ref == review.review_id

    job = storage.create_job("1234567", sender_key="acme_fm")
    document = storage.save_signed_document(_document("hash-2", "doc-2"))
    match = storage.create_match(_match(job.job_id, document.document_id, "match-1"))
    found = storage.find_processed_file("hash-2")
    assert found.exists
    assert found.found_in == "CONFIRMED"
    assert found.ref == match.match_id


def test_processing_failures_do_not_block_reprocessing(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))

    failed = storage.append_needs_review(
        NeedsReviewRecord(
            file_hash="hash-1",
            sender_key="acme_fm",
            reason=ReviewReason.PROCESSING_FAILED,
            message="OCR service down",
        )
    )
    assert not storage.find_processed_file("hash-1").exists

    replaced = storage.append_needs_review(
        NeedsReviewRecord(
            file_hash="hash-1",
            sender_key="acme_fm",
            reason=ReviewReason.NO_WORK_ORDER_NUMBER,
        )
    )

    assert replaced.review_id == failed.review_id
    assert replaced.reason == ReviewReason.NO_WORK_ORDER_NUMBER
    assert len(storage.list_needs_review("acme_fm")) == 1


def test_repeated_review_returns_stored_record(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))

    first = storage.append_needs_review(
        NeedsReviewRecord(
            file_hash="hash-1",
            sender_key="acme_fm",
            reason=ReviewReason.LOW_TRUST,
            candidates=["1234567"],
            chosen_candidate="1234567",
            pass_agreement=True,
            source_metadata={"filename": "a.pdf"},
        )
    )
    second = storage.append_needs_review(
        NeedsReviewRecord(
            file_hash="hash-1",
            sender_key="acme_fm",
            reason=ReviewReason.NO_MATCHING_JOB,
            chosen_candidate="1234567",
        )
    )

    assert second.review_id == first.review_id
    assert second.reason == ReviewReason.LOW_TRUST
    assert second.candidates == ["1234567"]
    assert second.pass_agreement is True
    assert second.source_metadata == {"filename": "a.pdf"}


def test_list_needs_review_filters_by_sender(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.append_needs_review(
        NeedsReviewRecord(file_hash="h1", sender_key="acme_fm", reason=ReviewReason.LOW_TRUST)
    )
    storage.append_needs_review(
        NeedsReviewRecord(file_hash="h2", sender_key="globex", reason=ReviewReason.LOW_TRUST)
    )

    assert [item.file_hash for item in storage.list_needs_review("acme_fm")] == ["h1"]
    assert len(storage.list_needs_review()) == 2


def test_create_match_rejects_second_match_for_job(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    job = storage.create_job("1234567", sender_key="acme_fm")
    doc_1 = storage.save_signed_document(_document("hash-1", "doc-1"))
    doc_2 = storage.save_signed_document(_document("hash-2", "doc-2"))

    storage.create_match(_match(job.job_id, doc_1.document_id))

    with pytest.raises(MatchConflictError):
        storage.create_match(_match(job.job_id, doc_2.document_id))
    assert storage.find_match_by_job(job.job_id).document_id == "doc-1"


def test_job_lookup_and_status_update(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    job = storage.create_job("1234567", issuer="ACME FM Services")

    found = storage.find_job_by_work_order_number("1234567")
    assert found == job
    assert storage.find_job_by_work_order_number("7654321") is None

    storage.update_job_status(
        job.job_id,
        status="SIGNED",
        signed_url="https://drive/1",
        confidence="high",
        signed_at="2025-01-01T12:00:00+00:00",
    )
    updated = storage.get_job(job.job_id)
    assert updated.status == "SIGNED"
    assert updated.signed_url == "https://drive/1"
    assert updated.confidence == "high"


def test_last_matched_work_order_number_per_sender(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    for index, number in enumerate(["1230000", "1235000"]):
        job = storage.create_job(number, sender_key="acme_fm")
        document = storage.save_signed_document(_document(f"hash-{index}", f"doc-{index}"))
        storage.create_match(_match(job.job_id, document.document_id))

    assert storage.last_matched_work_order_number("acme_fm") == "1235000"
    assert storage.last_matched_work_order_number("globex") is None


def test_template_round_trip(tmp_path) -> None:
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    assert storage.count_templates() == 0

    storage.save_template(
        TemplateConfig(
            sender_key="globex",
            template_id="tpl_globex",
            page=2,
            dpi=300,
            regex=r"^12",
            x_pct=0.6,
            y_pct=0.05,
            w_pct=0.3,
            h_pct=0.05,
        )
    )
    storage.save_template(
        TemplateConfig(
            sender_key="acme_fm",
            template_id="tpl_acme",
            x_pt=400,
            y_pt=36,
            w_pt=170,
            h_pt=40,
            page_width_pt=612,
            page_height_pt=792,
        )
    )

    fetched = storage.get_template("globex")
    assert fetched.page == 2
    assert fetched.dpi == 300
    assert fetched.regex == r"^12"
    assert fetched.x_pct == 0.6
    assert fetched.x_pt is None
    assert storage.count_templates() == 2
    assert [item.sender_key for item in storage.list_templates()] == ["acme_fm", "globex"]

    fetched.page = 3
    storage.save_template(fetched)
    assert storage.get_template("globex").page == 3
    assert storage.count_templates() == 2

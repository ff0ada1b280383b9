import threading
from unittest.mock import Mock

from signed_recon.adapters import google_drive_adapter
from signed_recon.adapters.google_drive_adapter import GoogleDriveAdapter
from signed_recon.adapters.sqlite_storage import SQLiteStorage
from signed_recon.domain.models import (
    DecisionState,
    OcrResponse,
    ProcessMode,
    ProcessRequest,
    TemplateConfig,
)
from signed_recon.domain.reasons import ReviewReason
from signed_recon.services.signed_processor import SignedDocumentProcessor

PNG_DATA_URL = "data:image/png;base64,iVBORw0KGgo="


def _build(tmp_path, template=None, text="", page_count=1, drive=None, workers=1):
    storage = SQLiteStorage(str(tmp_path / "test.db"))
    storage.save_template(
        template
        or TemplateConfig(
            sender_key="acme_fm",
            template_id="tpl_acme",
            page=1,
            dpi=200,
            expected_digits=7,
            x_pct=0.6,
            y_pct=0.05,
            w_pct=0.3,
            h_pct=0.05,
        )
    )
    if drive is None:
        drive = Mock()
        drive.upload_pdf.return_value = "https://drive.google.com/file/d/pdf-1/view"
        drive.upload_png.return_value = "https://drive.google.com/file/d/png-1/view"
    ocr = Mock()
    ocr.read_work_order_number.return_value = OcrResponse(
        wo_number="1234567",
        raw_text="WO 1234567",
        confidence_raw=0.95,
        snippet_image_url=PNG_DATA_URL,
    )
    pdf_reader = Mock()
    pdf_reader.page_count.return_value = page_count
    pdf_reader.extract_text.return_value = text
    processor = SignedDocumentProcessor(
        storage,
        drive,
        ocr,
        pdf_reader,
        workers=workers,
        signed_folder_name="Signed",
        snippets_folder_name="Snippets",
    )
    return processor, storage, drive, ocr


def _request(pdf_bytes=b"%PDF-1.4 signed", sender_key="acme_fm", **kwargs) -> ProcessRequest:
    return ProcessRequest(
        pdf_bytes=pdf_bytes, filename="signed.pdf", sender_key=sender_key, **kwargs
    )


def test_ocr_match_then_duplicate_is_skipped(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path)
    job = storage.create_job("1234567", sender_key="acme_fm")

    first = processor.process(_request())
    second = processor.process(_request())

    assert first.mode == ProcessMode.MATCHED
    assert first.job_id == job.job_id
    assert first.match_id
    assert first.work_order_number == "1234567"
    assert first.decision.state == DecisionState.QUICK_CHECK
    assert first.confidence_label == "high"
    assert first.snippet_url == "https://drive.google.com/file/d/png-1/view"
    assert first.storage_url == "https://drive.google.com/file/d/pdf-1/view"
    assert first.attempted_pages == "1"
    assert first.template_id == "tpl_acme"
    assert second.mode == ProcessMode.ALREADY_PROCESSED
    assert second.found_in == "CONFIRMED"
    assert ocr.read_work_order_number.call_count == 1
    drive.upload_pdf.assert_called_once()
    stored_job = storage.get_job(job.job_id)
    assert stored_job.status == "SIGNED"
    assert stored_job.confidence == "high"
    assert stored_job.signed_url == "https://drive.google.com/file/d/pdf-1/view"


def test_digital_text_skips_ocr(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path, text="Work order WO# 1234567 signed")
    job = storage.create_job("1234567", sender_key="acme_fm")

    result = processor.process(_request())

    assert result.mode == ProcessMode.MATCHED
    assert result.decision.state == DecisionState.AUTO_CONFIRMED
    assert result.decision.trust_score == 85
    assert result.confidence == 1.0
    ocr.read_work_order_number.assert_not_called()
    match = storage.find_match_by_job(job.job_id)
    assert match.extraction_method == "DIGITAL_TEXT"
    assert match.confidence_raw is None


def test_missing_template_goes_to_review(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path)

    result = processor.process(_request(sender_key="Unknown Sender"))

    assert result.mode == ProcessMode.NEEDS_REVIEW
    assert result.reason == ReviewReason.TEMPLATE_NOT_FOUND
    assert result.sender_key == "unknown_sender"
    ocr.read_work_order_number.assert_not_called()
    reviews = storage.list_needs_review("unknown_sender")
    assert [item.reason for item in reviews] == [ReviewReason.TEMPLATE_NOT_FOUND]
    assert reviews[0].source_metadata["filename"] == "signed.pdf"

    again = processor.process(_request(sender_key="Unknown Sender"))
    assert again.mode == ProcessMode.ALREADY_PROCESSED
    assert again.found_in == "REVIEW"


def test_full_page_crop_is_not_configured(tmp_path) -> None:
    template = TemplateConfig(
        sender_key="acme_fm",
        template_id="tpl_acme",
        x_pct=0.0,
        y_pct=0.0,
        w_pct=1.0,
        h_pct=1.0,
    )
    processor, storage, drive, ocr = _build(tmp_path, template=template)

    result = processor.process(_request())

    assert result.reason == ReviewReason.TEMPLATE_NOT_CONFIGURED
    assert result.template_id == "tpl_acme"
    ocr.read_work_order_number.assert_not_called()


def test_page_past_end_goes_to_review(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path, page_count=1)

    result = processor.process(_request(page_override=3))

    assert result.reason == ReviewReason.PAGE_MISMATCH
    ocr.read_work_order_number.assert_not_called()
    assert "past the last page" in storage.list_needs_review()[0].message


def test_no_job_goes_to_review_without_upload(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path)

    result = processor.process(_request())

    assert result.mode == ProcessMode.NEEDS_REVIEW
    assert result.reason == ReviewReason.NO_MATCHING_JOB
    drive.upload_pdf.assert_not_called()
    review = storage.list_needs_review("acme_fm")[0]
    assert review.chosen_candidate == "1234567"
    assert review.extraction_method == "OCR"
    assert review.snippet_url == "https://drive.google.com/file/d/png-1/view"


def test_snippet_upload_failure_is_not_fatal(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path)
    drive.upload_png.side_effect = RuntimeError("Drive down")
    storage.create_job("1234567", sender_key="acme_fm")

    result = processor.process(_request())

    assert result.mode == ProcessMode.MATCHED
    assert result.snippet_url is None


def test_snippet_network_failure_is_not_fatal(tmp_path, monkeypatch) -> None:
    def network_down(url, **kwargs):
        raise google_drive_adapter.requests.ConnectionError("network down")

    monkeypatch.setattr(google_drive_adapter.requests, "get", network_down)
    monkeypatch.setattr(google_drive_adapter.requests, "post", network_down)
    processor, storage, drive, ocr = _build(tmp_path, drive=GoogleDriveAdapter("token-1"))

    result = processor.process(_request())

    assert result.mode == ProcessMode.NEEDS_REVIEW
    assert result.reason == ReviewReason.NO_MATCHING_JOB
    assert result.snippet_url is None
    review = storage.list_needs_review("acme_fm")[0]
    assert review.snippet_url is None


def test_low_confidence_after_retry(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path)
    ocr.read_work_order_number.side_effect = [
        OcrResponse(wo_number="1234567", raw_text="1234567", confidence_raw=0.3),
        OcrResponse(wo_number="1234561", raw_text="1234561", confidence_raw=0.35),
    ]

    result = processor.process(_request())

    assert result.reason == ReviewReason.LOW_CONFIDENCE_AFTER_RETRY
    assert result.retry_attempted
    assert result.chosen_attempt_index == 1
    assert result.work_order_number == "1234561"
    assert len(result.attempts) == 2


def test_work_order_override_picks_the_job(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path)
    job = storage.create_job("7654321", sender_key="acme_fm")

    result = processor.process(_request(work_order_override="7654321"))

    assert result.mode == ProcessMode.MATCHED
    assert result.job_id == job.job_id
    assert result.work_order_number == "7654321"


def test_points_template_reports_pixel_crop(tmp_path) -> None:
    template = TemplateConfig(
        sender_key="acme_fm",
        template_id="tpl_acme",
        dpi=200,
        x_pt=400,
        y_pt=36,
        w_pt=170,
        h_pt=40,
        page_width_pt=612,
        page_height_pt=792,
    )
    processor, storage, drive, ocr = _build(tmp_path, template=template)

    result = processor.process(_request())

    request = ocr.read_work_order_number.call_args[0][0]
    assert request.points is not None
    assert request.region is None
    assert result.debug["dpi"] == 200
    assert result.debug["render_width_px"] == 1700
    assert result.debug["render_height_px"] == 2200
    assert result.debug["crop_px"] == {"x_px": 1111, "y_px": 100, "w_px": 472, "h_px": 111}


def test_batch_isolates_failures(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path)
    storage.create_job("1234567", sender_key="acme_fm")
    ocr.read_work_order_number.side_effect = [
        RuntimeError("OCR service down"),
        OcrResponse(wo_number="1234567", raw_text="WO 1234567", confidence_raw=0.95),
    ]
    events = []
    failing = _request(pdf_bytes=b"%PDF-1.4 one")
    passing = _request(pdf_bytes=b"%PDF-1.4 two")

    results = processor.process_batch([failing, passing], progress_callback=events.append)

    assert [result.mode for result in results] == [ProcessMode.FAILED, ProcessMode.MATCHED]
    assert results[0].error == "OCR service down"
    assert results[0].reason == ReviewReason.PROCESSING_FAILED
    assert [event["stage"] for event in events] == [
        "start",
        "document_failed",
        "document_done",
        "complete",
    ]
    assert events[-1]["failed"] == 1
    reviews = storage.list_needs_review("acme_fm")
    assert [item.reason for item in reviews] == [ReviewReason.PROCESSING_FAILED]


def test_concurrent_copies_of_one_file_record_a_single_result(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path, workers=2)
    job = storage.create_job("1234567", sender_key="acme_fm")
    barrier = threading.Barrier(2)

    def read_after_both_started(request):
        barrier.wait(timeout=5)
        return OcrResponse(
            wo_number="1234567",
            raw_text="WO 1234567",
            confidence_raw=0.95,
            snippet_image_url=PNG_DATA_URL,
        )

    ocr.read_work_order_number.side_effect = read_after_both_started

    results = processor.process_batch([_request(), _request()])

    assert sorted(result.mode.value for result in results) == [
        "ALREADY_PROCESSED",
        "MATCHED",
    ]
    assert {result.job_id for result in results} == {job.job_id}
    assert len({result.match_id for result in results}) == 1
    assert storage.list_needs_review("acme_fm") == []
    assert storage.find_processed_file(results[0].file_hash).found_in == "CONFIRMED"


def test_failed_document_can_be_reprocessed(tmp_path) -> None:
    processor, storage, drive, ocr = _build(tmp_path)
    ocr.read_work_order_number.side_effect = RuntimeError("OCR service down")
    request = _request()

    failed = processor.process_batch([request])[0]
    assert failed.mode == ProcessMode.FAILED

    ocr.read_work_order_number.side_effect = None
    ocr.read_work_order_number.return_value = OcrResponse(
        wo_number=None, raw_text="", confidence_raw=0.1
    )
    retried = processor.process(request)

    assert retried.mode == ProcessMode.NEEDS_REVIEW
    assert retried.reason == ReviewReason.NO_WORK_ORDER_NUMBER
    reviews = storage.list_needs_review("acme_fm")
    assert [item.reason for item in reviews] == [ReviewReason.NO_WORK_ORDER_NUMBER]

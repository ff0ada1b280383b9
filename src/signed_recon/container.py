from __future__ import annotations

from typing import Any

from signed_recon.adapters.google_drive_adapter import GoogleDriveAdapter
from signed_recon.adapters.ocr_http_adapter import SignedOcrHttpAdapter
from signed_recon.adapters.ocr_tesseract_adapter import TesseractOCRAdapter
from signed_recon.adapters.pdf_reader_adapter import PdfMinerReader
from signed_recon.adapters.sqlite_storage import SQLiteStorage
from signed_recon.settings import (
    OCR_LANG,
    OCR_REQUEST_TIMEOUT,
    OCR_RETRY_CONFIDENCE,
    PROCESS_WORKERS,
    SEQ_MAX_FORWARD_JUMP,
    SIGNED_OCR_SERVICE_URL,
)
from signed_recon.services.dedup_service import DedupGuard
from signed_recon.services.signed_processor import SignedDocumentProcessor
from signed_recon.services.templates_service import TemplatesService


def build_services(access_token: str, sqlite_path: str) -> dict[str, Any]:
    drive = GoogleDriveAdapter(access_token)
    if SIGNED_OCR_SERVICE_URL:
        ocr = SignedOcrHttpAdapter(SIGNED_OCR_SERVICE_URL, timeout=OCR_REQUEST_TIMEOUT)
    else:
        ocr = TesseractOCRAdapter(language=OCR_LANG)
    pdf_reader = PdfMinerReader()
    storage = SQLiteStorage(sqlite_path)
    templates_service = TemplatesService(storage)
    templates_service.seed_if_empty()
    return {
        "signed_processor": SignedDocumentProcessor(
            storage,
            drive,
            ocr,
            pdf_reader,
            retry_confidence=OCR_RETRY_CONFIDENCE,
            max_forward_jump=SEQ_MAX_FORWARD_JUMP,
            workers=PROCESS_WORKERS,
        ),
        "templates_service": templates_service,
        "dedup_guard": DedupGuard(storage),
        "drive": drive,
        "ocr": ocr,
        "pdf_reader": pdf_reader,
        "storage": storage,
    }

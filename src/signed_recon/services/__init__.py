from .dedup_service import DedupGuard
from .ocr_orchestrator import OcrRetryOrchestrator
from .reconciliation_service import ReconciliationRouter
from .signed_processor import SignedDocumentProcessor
from .templates_service import TemplatesService

__all__ = [
    "DedupGuard",
    "OcrRetryOrchestrator",
    "ReconciliationRouter",
    "SignedDocumentProcessor",
    "TemplatesService",
]

from .google_drive_adapter import GoogleDriveAdapter
from .ocr_http_adapter import SignedOcrHttpAdapter
from .ocr_tesseract_adapter import TesseractOCRAdapter
from .pdf_reader_adapter import PdfMinerReader
from .sqlite_storage import SQLiteStorage

__all__ = [
    "GoogleDriveAdapter",
    "PdfMinerReader",
    "SQLiteStorage",
    "SignedOcrHttpAdapter",
    "TesseractOCRAdapter",
]

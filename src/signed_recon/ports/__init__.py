from .drive_port import DrivePort
from .ocr_port import OCRPort
from .pdf_reader_port import PdfReaderPort
from .storage_port import StoragePort

__all__ = ["DrivePort", "OCRPort", "PdfReaderPort", "StoragePort"]

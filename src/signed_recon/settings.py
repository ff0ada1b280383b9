from __future__ import annotations

import os

SQLITE_PATH = os.getenv("SQLITE_PATH", "./signed_recon.db")

GOOGLE_DRIVE_ACCESS_TOKEN = os.getenv("GOOGLE_DRIVE_ACCESS_TOKEN", "")
SIGNED_DRIVE_FOLDER_NAME = os.getenv("SIGNED_DRIVE_FOLDER_NAME", "Signed Work Orders")
SNIPPETS_DRIVE_FOLDER_NAME = os.getenv("SNIPPETS_DRIVE_FOLDER_NAME", "Signed Snippets")

SIGNED_OCR_SERVICE_URL = os.getenv("SIGNED_OCR_SERVICE_URL", "")
OCR_REQUEST_TIMEOUT = float(os.getenv("OCR_REQUEST_TIMEOUT", "60"))
OCR_LANG = os.getenv("OCR_LANG", "eng")

DEFAULT_DPI = int(os.getenv("DEFAULT_DPI", "200"))
DEFAULT_EXPECTED_DIGITS = int(os.getenv("DEFAULT_EXPECTED_DIGITS", "7"))

# Below this OCR confidence the orchestrator retries with an expanded crop
# and, on multi-page documents, tries an alternate page.
OCR_RETRY_CONFIDENCE = float(os.getenv("OCR_RETRY_CONFIDENCE", "0.55"))
# Largest forward distance from the last known work order number that still
# counts as in-sequence.
SEQ_MAX_FORWARD_JUMP = int(os.getenv("SEQ_MAX_FORWARD_JUMP", "5000"))

PROCESS_WORKERS = int(os.getenv("PROCESS_WORKERS", "4"))

from __future__ import annotations

import hashlib
import logging

from signed_recon.domain.models import DedupResult
from signed_recon.ports.storage_port import StoragePort

logger = logging.getLogger(__name__)


def compute_file_hash(pdf_bytes: bytes) -> str:
    """SHA-256 of the raw PDF bytes as lowercase hex."""

    return hashlib.sha256(pdf_bytes).hexdigest()


class DedupGuard:
    def __init__(self, storage: StoragePort) -> None:
        self._storage = storage

    def compute_file_hash(self, pdf_bytes: bytes) -> str:
        return compute_file_hash(pdf_bytes)

    def check_already_processed(self, file_hash: str) -> DedupResult:
        result = self._storage.find_processed_file(file_hash)
        if result.exists:
            logger.info(
                "File %s already processed (found in %s, ref %s)",
                file_hash[:12],
                result.found_in,
                result.ref,
            )
        return result

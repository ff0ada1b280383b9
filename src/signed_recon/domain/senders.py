from __future__ import annotations

import re

from signed_recon.domain.models import JobRecord


def normalize_sender_key(value: str | None) -> str:
    """Lowercase a sender key and replace anything outside [a-z0-9_] with "_"."""

    if not value:
        return ""
    return re.sub(r"[^a-z0-9_]", "_", value.strip().lower())


def _compact(value: str) -> str:
    return normalize_sender_key(value).replace("_", "")


def sender_key_mismatch(job: JobRecord, sender_key: str) -> bool:
    """True when the job clearly belongs to a different sender.

    Jobs without a recorded sender key fall back to comparing the issuer name;
    a job with neither is never treated as a mismatch.
    """

    requested = _compact(sender_key)
    if not requested:
        return False
    if job.sender_key:
        return _compact(job.sender_key) != requested
    if job.issuer:
        issuer = _compact(job.issuer)
        return requested not in issuer and issuer not in requested
    return False

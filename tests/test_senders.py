from signed_recon.domain.models import JobRecord
from signed_recon.domain.senders import normalize_sender_key, sender_key_mismatch


def test_normalize_sender_key() -> None:
    assert normalize_sender_key(" Acme-FM ") == "acme_fm"
    assert normalize_sender_key("acme_fm") == "acme_fm"
    assert normalize_sender_key(None) == ""


def test_job_sender_key_comparison_ignores_underscores() -> None:
    job = JobRecord(job_id="job-1", work_order_number="1234567", sender_key="acme_fm")

    assert not sender_key_mismatch(job, "acmefm")
    assert not sender_key_mismatch(job, "ACME FM")
    assert sender_key_mismatch(job, "globex")


def test_issuer_fallback_uses_containment() -> None:
    job = JobRecord(job_id="job-1", work_order_number="1234567", issuer="ACME FM Services")

    assert not sender_key_mismatch(job, "acme_fm")
    assert sender_key_mismatch(job, "globex")


def test_job_without_sender_or_issuer_never_mismatches() -> None:
    job = JobRecord(job_id="job-1", work_order_number="1234567")

    assert not sender_key_mismatch(job, "acme_fm")


def test_empty_sender_key_never_mismatches() -> None:
    job = JobRecord(job_id="job-1", work_order_number="1234567", sender_key="acme_fm")

    assert not sender_key_mismatch(job, "")

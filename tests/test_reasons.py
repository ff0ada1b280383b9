from signed_recon.domain.reasons import (
    ReviewReason,
    confidence_label,
    review_ux,
)


def test_every_review_reason_has_ux_copy() -> None:
    for reason in ReviewReason:
        ux = review_ux(reason, "acme_fm")
        assert ux.title
        assert ux.message
        assert ux.action_label
        assert ux.tone in {"info", "warning", "danger"}


def test_template_reasons_link_to_sender_template() -> None:
    for reason in (
        ReviewReason.TEMPLATE_NOT_FOUND,
        ReviewReason.TEMPLATE_NOT_CONFIGURED,
        ReviewReason.INVALID_CROP,
        ReviewReason.CROP_TOO_SMALL,
    ):
        assert review_ux(reason, "acme fm").href == "/onboarding/templates?fmKey=acme%20fm"
    assert review_ux(ReviewReason.PAGE_MISMATCH, "acme_fm").href == (
        "/onboarding/templates?fmKey=acme_fm"
    )


def test_template_link_without_sender() -> None:
    assert review_ux(ReviewReason.TEMPLATE_NOT_FOUND).href == "/onboarding/templates"


def test_fixed_action_links() -> None:
    assert review_ux(ReviewReason.NO_MATCHING_JOB).href == "/work-orders"
    assert review_ux(ReviewReason.NO_MATCHING_JOB).tone == "danger"
    assert review_ux(ReviewReason.ALREADY_MATCHED).href == "/signed"
    assert review_ux(ReviewReason.SENDER_KEY_MISMATCH).href == "/signed/upload"
    assert review_ux(ReviewReason.NO_WORK_ORDER_NUMBER).href == ""


def test_confidence_label_bands() -> None:
    assert confidence_label(0.95) == "high"
    assert confidence_label(0.9) == "high"
    assert confidence_label(0.6) == "medium"
    assert confidence_label(0.59) == "low"
    assert confidence_label(None) == "low"
    assert confidence_label(float("nan")) == "low"

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from urllib.parse import quote


class ReasonCode(str, Enum):
    """Reasons attached to a trust decision."""

    NO_CANDIDATE = "NO_CANDIDATE"
    MULTIPLE_CANDIDATES = "MULTIPLE_CANDIDATES"
    FORMAT_MISMATCH = "FORMAT_MISMATCH"
    LOW_CONFIDENCE = "LOW_CONFIDENCE"
    PASS_AGREEMENT = "PASS_AGREEMENT"
    SEQ_OUTLIER = "SEQ_OUTLIER"
    OK_FORMAT = "OK_FORMAT"
    DIGITAL_TEXT_STRONG = "DIGITAL_TEXT_STRONG"


class ReviewReason(str, Enum):
    """Why a document was routed to the needs-review queue."""

    TEMPLATE_NOT_FOUND = "TEMPLATE_NOT_FOUND"
    TEMPLATE_NOT_CONFIGURED = "TEMPLATE_NOT_CONFIGURED"
    INVALID_CROP = "INVALID_CROP"
    CROP_TOO_SMALL = "CROP_TOO_SMALL"
    NO_WORK_ORDER_NUMBER = "NO_WORK_ORDER_NUMBER"
    INVALID_WORK_ORDER_NUMBER = "INVALID_WORK_ORDER_NUMBER"
    FORMAT_MISMATCH = "FORMAT_MISMATCH"
    MULTIPLE_CANDIDATES = "MULTIPLE_CANDIDATES"
    PAGE_MISMATCH = "PAGE_MISMATCH"
    LOW_CONFIDENCE_AFTER_RETRY = "LOW_CONFIDENCE_AFTER_RETRY"
    LOW_TRUST = "LOW_TRUST"
    NO_MATCHING_JOB = "NO_MATCHING_JOB"
    ALREADY_MATCHED = "ALREADY_MATCHED"
    SENDER_KEY_MISMATCH = "SENDER_KEY_MISMATCH"
    PROCESSING_FAILED = "PROCESSING_FAILED"


@dataclass(frozen=True)
class ReviewUx:
    title: str
    message: str
    action_label: str
    href: str
    tone: str


_TEMPLATES_HREF = "/onboarding/templates"

# href values of None are filled with the sender's template link.
_REVIEW_UX: dict[ReviewReason, tuple[str, str, str, str | None, str]] = {
    ReviewReason.TEMPLATE_NOT_FOUND: (
        "Template not found",
        "No template exists for this sender yet. Create a crop zone and save.",
        "Create template",
        None,
        "warning",
    ),
    ReviewReason.TEMPLATE_NOT_CONFIGURED: (
        "Template not configured",
        "No crop zone is saved for this template. Draw a rectangle and save it.",
        "Update template",
        None,
        "warning",
    ),
    ReviewReason.INVALID_CROP: (
        "Invalid crop zone",
        "The saved crop is off-page or out of bounds. Re-draw and save the rectangle.",
        "Update template",
        None,
        "warning",
    ),
    ReviewReason.CROP_TOO_SMALL: (
        "Crop zone too small",
        "The rectangle is too small to reliably read. Make it bigger and save.",
        "Update template",
        None,
        "warning",
    ),
    ReviewReason.NO_WORK_ORDER_NUMBER: (
        "Work order number not detected",
        "No work order number was found in the document. Enter it manually to confirm.",
        "Enter WO manually",
        "",
        "info",
    ),
    ReviewReason.INVALID_WORK_ORDER_NUMBER: (
        "Work order number looks unusual",
        "The extracted number looks unusual. Verify it or enter it manually.",
        "Enter WO manually",
        "",
        "warning",
    ),
    ReviewReason.FORMAT_MISMATCH: (
        "Work order number has the wrong format",
        "The extracted number does not match this sender's work order format.",
        "Verify WO number",
        "",
        "warning",
    ),
    ReviewReason.MULTIPLE_CANDIDATES: (
        "Several possible work order numbers",
        "More than one plausible work order number was found. Pick the right one.",
        "Choose WO number",
        "",
        "warning",
    ),
    ReviewReason.PAGE_MISMATCH: (
        "Work order may be on another page",
        "The number may be on a different page than the template expects. "
        "Confirm the page and re-save the template.",
        "Update template page",
        None,
        "warning",
    ),
    ReviewReason.LOW_CONFIDENCE_AFTER_RETRY: (
        "Document quality, please verify",
        "After multiple attempts the extraction was not reliable. Verify the number "
        "or enter it manually.",
        "Enter WO manually",
        "",
        "info",
    ),
    ReviewReason.LOW_TRUST: (
        "Verification required",
        "The extraction has issues that require verification. Check the number or "
        "enter it manually.",
        "Verify / Enter WO manually",
        "",
        "warning",
    ),
    ReviewReason.NO_MATCHING_JOB: (
        "Work order not found",
        "No job exists for this work order number. Import the original work order "
        "first, then resolve.",
        "Go to work orders",
        "/work-orders",
        "danger",
    ),
    ReviewReason.ALREADY_MATCHED: (
        "Job already has a signed document",
        "The matching job is already linked to another signed document.",
        "Compare documents",
        "/signed",
        "warning",
    ),
    ReviewReason.SENDER_KEY_MISMATCH: (
        "Sender mismatch, please confirm",
        "This document does not match the job's sender profile. Reprocess with the "
        "correct sender or confirm manually.",
        "Reprocess with correct sender",
        "/signed/upload",
        "warning",
    ),
    ReviewReason.PROCESSING_FAILED: (
        "Processing failed",
        "The document could not be processed. Retry it or resolve it manually.",
        "Retry",
        "",
        "danger",
    ),
}


def review_ux(reason: ReviewReason, sender_key: str | None = None) -> ReviewUx:
    title, message, action_label, href, tone = _REVIEW_UX[reason]
    if href is None:
        href = (
            f"{_TEMPLATES_HREF}?fmKey={quote(sender_key)}" if sender_key else _TEMPLATES_HREF
        )
    return ReviewUx(
        title=title, message=message, action_label=action_label, href=href, tone=tone
    )


def confidence_label(value: float | None) -> str:
    if value is None or value != value:
        return "low"
    if value >= 0.9:
        return "high"
    if value >= 0.6:
        return "medium"
    return "low"

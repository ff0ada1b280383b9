from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from uuid import uuid4

from signed_recon.domain.crop import Crop, PercentCrop, PointsCrop
from signed_recon.domain.reasons import ReasonCode, ReviewReason


class ExtractionMethod(str, Enum):
    DIGITAL_TEXT = "DIGITAL_TEXT"
    OCR = "OCR"


class DecisionState(str, Enum):
    """Terminal trust states, in descending order of trust."""

    AUTO_CONFIRMED = "AUTO_CONFIRMED"
    QUICK_CHECK = "QUICK_CHECK"
    NEEDS_ATTENTION = "NEEDS_ATTENTION"


class ProcessMode(str, Enum):
    MATCHED = "MATCHED"
    NEEDS_REVIEW = "NEEDS_REVIEW"
    ALREADY_PROCESSED = "ALREADY_PROCESSED"
    FAILED = "FAILED"


class MatchConflictError(RuntimeError):
    """Raised when a job or signed document already has a match."""


@dataclass(frozen=True)
class TemplateRule:
    expected_digits: int
    regex: str | None = None


@dataclass
class TemplateConfig:
    """Per-sender template: page, DPI, work order rule and crop zone."""

    sender_key: str
    template_id: str
    page: int = 1
    dpi: int | None = None
    expected_digits: int = 7
    regex: str | None = None
    x_pct: float | None = None
    y_pct: float | None = None
    w_pct: float | None = None
    h_pct: float | None = None
    x_pt: float | None = None
    y_pt: float | None = None
    w_pt: float | None = None
    h_pt: float | None = None
    page_width_pt: float | None = None
    page_height_pt: float | None = None
    updated_at: str | None = None

    def rule(self) -> TemplateRule:
        return TemplateRule(expected_digits=self.expected_digits, regex=self.regex)


@dataclass(frozen=True)
class ExtractionSignals:
    extraction_method: ExtractionMethod
    confidence_raw: float | None = None
    pass_agreement: bool = False
    last_known_work_order_number: str | None = None


@dataclass(frozen=True)
class DecisionResult:
    state: DecisionState
    best_candidate: str | None
    normalized_candidates: tuple[str, ...]
    trust_score: int
    reasons: tuple[ReasonCode, ...]

    @property
    def reasons_text(self) -> str:
        return "|".join(reason.value for reason in self.reasons)

    @property
    def candidates_text(self) -> str:
        return "|".join(self.normalized_candidates)


@dataclass(frozen=True)
class OcrRequest:
    """One call to the OCR service.

    Exactly one of ``region`` (percentage mode) or ``points`` (points mode)
    must be set; the request is rejected at construction otherwise.
    """

    pdf_bytes: bytes
    filename: str
    template_id: str
    page: int
    dpi: int
    region: PercentCrop | None = None
    points: PointsCrop | None = None

    def __post_init__(self) -> None:
        if (self.region is None) == (self.points is None):
            raise ValueError("OcrRequest needs exactly one of region or points")

    @property
    def crop(self) -> Crop:
        return self.region if self.region is not None else self.points  # type: ignore[return-value]

    def form_fields(self) -> dict[str, str]:
        fields = {
            "templateId": self.template_id,
            "page": str(self.page),
            "dpi": str(self.dpi),
        }
        if self.region is not None:
            fields.update(
                {
                    "xPct": str(self.region.x_pct),
                    "yPct": str(self.region.y_pct),
                    "wPct": str(self.region.w_pct),
                    "hPct": str(self.region.h_pct),
                }
            )
        else:
            fields.update(
                {
                    "xPt": str(self.points.x_pt),
                    "yPt": str(self.points.y_pt),
                    "wPt": str(self.points.w_pt),
                    "hPt": str(self.points.h_pt),
                    "pageWidthPt": str(self.points.page_width_pt),
                    "pageHeightPt": str(self.points.page_height_pt),
                }
            )
        return fields


@dataclass
class OcrResponse:
    wo_number: str | None
    raw_text: str
    confidence_raw: float
    snippet_image_url: str | None = None


@dataclass
class OcrAttempt:
    page: int
    confidence: float
    extracted_wo_number: str | None
    raw_text: str
    snippet_image: str | None
    region_used: Crop
    is_retry: bool = False
    is_alternate_page: bool = False

    def summary(self) -> dict:
        return {
            "page": self.page,
            "confidence": self.confidence,
            "wo_number": self.extracted_wo_number,
            "is_retry": self.is_retry,
            "is_alternate_page": self.is_alternate_page,
        }


@dataclass
class OrchestrationResult:
    attempts: list[OcrAttempt]
    best_index: int
    pass_agreement: bool
    retry_attempted: bool
    alternate_page_attempted: bool

    @property
    def best(self) -> OcrAttempt:
        return self.attempts[self.best_index]

    @property
    def attempted_pages(self) -> list[int]:
        return sorted({attempt.page for attempt in self.attempts})


@dataclass
class DedupResult:
    exists: bool
    found_in: str | None = None
    ref: str | None = None


@dataclass
class JobRecord:
    job_id: str
    work_order_number: str
    sender_key: str | None = None
    issuer: str | None = None
    status: str = "OPEN"
    signed_url: str | None = None
    confidence: str | None = None
    signed_at: str | None = None


@dataclass
class SignedDocumentRecord:
    document_id: str
    file_hash: str
    sender_key: str
    extraction_method: str
    storage_url: str | None = None
    extraction_confidence: float | None = None
    extraction_rationale: str = ""
    work_order_number: str | None = None
    source_metadata: dict = field(default_factory=dict)
    created_at: str | None = None


@dataclass
class MatchRecord:
    match_id: str
    job_id: str
    document_id: str
    decision_state: str
    trust_score: int
    decision_reasons: str = ""
    candidates: str = ""
    extraction_method: str = ""
    confidence_raw: float | None = None
    pass_agreement: bool | None = None
    chosen_candidate: str | None = None
    created_at: str | None = None


@dataclass
class NeedsReviewRecord:
    file_hash: str
    sender_key: str
    reason: ReviewReason
    raw_text: str = ""
    confidence: float | None = None
    candidates: list[str] = field(default_factory=list)
    chosen_candidate: str | None = None
    trust_score: int | None = None
    decision_state: str | None = None
    decision_reasons: str = ""
    extraction_method: str | None = None
    confidence_raw: float | None = None
    pass_agreement: bool | None = None
    manual_override: str | None = None
    message: str | None = None
    snippet_url: str | None = None
    source_metadata: dict = field(default_factory=dict)
    review_id: str | None = None
    created_at: str | None = None

    @property
    def review_dedupe_key(self) -> str:
        return f"{self.file_hash}:{self.sender_key}:{self.chosen_candidate or 'none'}"


@dataclass
class ProcessRequest:
    pdf_bytes: bytes
    filename: str
    sender_key: str
    page_override: int | None = None
    work_order_override: str | None = None
    source_metadata: dict = field(default_factory=dict)
    request_id: str = field(default_factory=lambda: uuid4().hex)


@dataclass
class ProcessResult:
    mode: ProcessMode
    file_hash: str
    sender_key: str
    work_order_number: str | None = None
    reason: ReviewReason | None = None
    decision: DecisionResult | None = None
    confidence: float | None = None
    confidence_label: str = "low"
    storage_url: str | None = None
    snippet_url: str | None = None
    job_id: str | None = None
    match_id: str | None = None
    found_in: str | None = None
    retry_attempted: bool = False
    alternate_page_attempted: bool = False
    attempted_pages: str = ""
    chosen_page: int | None = None
    chosen_attempt_index: int | None = None
    attempts: list[dict] = field(default_factory=list)
    template_id: str | None = None
    debug: dict = field(default_factory=dict)
    error: str | None = None

from .candidates import extract_candidates_from_text, normalize_candidate, validate_format
from .crop import PercentCrop, PointsCrop, resolve_crop, validate_crop
from .decision import decide
from .models import DecisionResult, DecisionState, ExtractionMethod, ExtractionSignals, TemplateRule
from .reasons import ReasonCode, ReviewReason

__all__ = [
    "DecisionResult",
    "DecisionState",
    "ExtractionMethod",
    "ExtractionSignals",
    "PercentCrop",
    "PointsCrop",
    "ReasonCode",
    "ReviewReason",
    "TemplateRule",
    "decide",
    "extract_candidates_from_text",
    "normalize_candidate",
    "resolve_crop",
    "validate_crop",
    "validate_format",
]

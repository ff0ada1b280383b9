"""Trust decision engine.

``decide`` is pure: the same candidates, rule and signals always produce the
same ``DecisionResult``. Nothing here touches storage or the network.
"""

from __future__ import annotations

from typing import Sequence

from signed_recon.domain.candidates import (
    digits_only,
    extract_candidates_from_text,
    normalize_candidates,
    validate_format,
)
from signed_recon.domain.models import (
    DecisionResult,
    DecisionState,
    ExtractionMethod,
    ExtractionSignals,
    TemplateRule,
)
from signed_recon.domain.reasons import ReasonCode

BASE_SCORE = 60
DIGITAL_TEXT_BONUS = 25
PASS_AGREEMENT_BONUS = 20
HIGH_CONFIDENCE = 0.9
HIGH_CONFIDENCE_BONUS = 15
MEDIUM_CONFIDENCE = 0.6
MEDIUM_CONFIDENCE_BONUS = 5
LOW_CONFIDENCE_PENALTY = 15
AGREEMENT_OVER_LOW_CONFIDENCE_BONUS = 5
SEQ_IN_RANGE_BONUS = 5
SEQ_OUTLIER_PENALTY = 10
SEQ_MAX_FORWARD_JUMP = 5000

AUTO_CONFIRM_THRESHOLD = 80
QUICK_CHECK_THRESHOLD = 60
FORMAT_MISMATCH_SCORE = 20
MULTIPLE_CANDIDATES_MAX_SCORE = 30


def state_for_score(score: int) -> DecisionState:
    if score >= AUTO_CONFIRM_THRESHOLD:
        return DecisionState.AUTO_CONFIRMED
    if score >= QUICK_CHECK_THRESHOLD:
        return DecisionState.QUICK_CHECK
    return DecisionState.NEEDS_ATTENTION


def score_candidate(
    candidate: str,
    signals: ExtractionSignals,
    max_forward_jump: int = SEQ_MAX_FORWARD_JUMP,
) -> tuple[int, list[ReasonCode]]:
    """Score a format-valid candidate. Returns the clamped score and reasons."""

    score = BASE_SCORE
    reasons = [ReasonCode.OK_FORMAT]

    if signals.extraction_method == ExtractionMethod.DIGITAL_TEXT:
        score += DIGITAL_TEXT_BONUS
        reasons.append(ReasonCode.DIGITAL_TEXT_STRONG)

    if signals.pass_agreement:
        score += PASS_AGREEMENT_BONUS
        reasons.append(ReasonCode.PASS_AGREEMENT)

    confidence = signals.confidence_raw
    if confidence is not None and confidence == confidence:
        if confidence >= HIGH_CONFIDENCE:
            score += HIGH_CONFIDENCE_BONUS
        elif confidence >= MEDIUM_CONFIDENCE:
            score += MEDIUM_CONFIDENCE_BONUS
        elif signals.pass_agreement:
            score += AGREEMENT_OVER_LOW_CONFIDENCE_BONUS
        else:
            score -= LOW_CONFIDENCE_PENALTY
            reasons.append(ReasonCode.LOW_CONFIDENCE)

    last_known = digits_only(signals.last_known_work_order_number or "")
    if last_known:
        diff = int(candidate) - int(last_known)
        if diff < 0 or diff > max_forward_jump:
            score -= SEQ_OUTLIER_PENALTY
            reasons.append(ReasonCode.SEQ_OUTLIER)
        else:
            score += SEQ_IN_RANGE_BONUS

    return max(0, min(100, score)), reasons


def decide(
    candidates: Sequence[str] | None,
    rule: TemplateRule,
    signals: ExtractionSignals,
    raw_text: str | None = None,
    max_forward_jump: int = SEQ_MAX_FORWARD_JUMP,
) -> DecisionResult:
    """Decide how far an extracted work order number can be trusted.

    When ``candidates`` is empty they are extracted from ``raw_text``.
    """

    source = list(candidates or [])
    if not source and raw_text:
        source = extract_candidates_from_text(raw_text, rule.expected_digits)
    normalized = tuple(normalize_candidates(source))

    if not normalized:
        return DecisionResult(
            state=DecisionState.NEEDS_ATTENTION,
            best_candidate=None,
            normalized_candidates=normalized,
            trust_score=0,
            reasons=(ReasonCode.NO_CANDIDATE,),
        )

    valid = [candidate for candidate in normalized if validate_format(candidate, rule)]

    if not valid:
        return DecisionResult(
            state=DecisionState.NEEDS_ATTENTION,
            best_candidate=normalized[0],
            normalized_candidates=normalized,
            trust_score=FORMAT_MISMATCH_SCORE,
            reasons=(ReasonCode.FORMAT_MISMATCH,),
        )

    if len(valid) > 1:
        resolved = _resolve_by_sequence(valid, signals, max_forward_jump)
        if resolved is not None:
            candidate, score, reasons = resolved
            return DecisionResult(
                state=state_for_score(score),
                best_candidate=candidate,
                normalized_candidates=normalized,
                trust_score=score,
                reasons=tuple(reasons),
            )
        return DecisionResult(
            state=DecisionState.NEEDS_ATTENTION,
            best_candidate=valid[0],
            normalized_candidates=normalized,
            trust_score=min(MULTIPLE_CANDIDATES_MAX_SCORE, 100 - 10 * len(valid)),
            reasons=(ReasonCode.MULTIPLE_CANDIDATES,),
        )

    score, reasons = score_candidate(valid[0], signals, max_forward_jump)
    return DecisionResult(
        state=state_for_score(score),
        best_candidate=valid[0],
        normalized_candidates=normalized,
        trust_score=score,
        reasons=tuple(reasons),
    )


def _resolve_by_sequence(
    valid: list[str], signals: ExtractionSignals, max_forward_jump: int
) -> tuple[str, int, list[ReasonCode]] | None:
    # Closest candidate at or after the last known number, if it scores well enough.
    last_known = digits_only(signals.last_known_work_order_number or "")
    if not last_known:
        return None
    floor = int(last_known)
    forward = [candidate for candidate in valid if int(candidate) >= floor]
    if not forward:
        return None
    candidate = min(forward, key=int)
    score, reasons = score_candidate(candidate, signals, max_forward_jump)
    if score < QUICK_CHECK_THRESHOLD:
        return None
    return candidate, score, reasons

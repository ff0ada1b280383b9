from __future__ import annotations

import re
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from signed_recon.domain.models import TemplateRule

_WO_PREFIX = re.compile(r"^\s*wo\s*#?\s*", re.IGNORECASE)
_WORK_ORDER_PREFIX = re.compile(r"^\s*work\s*order\s*#?\s*", re.IGNORECASE)
_PREFIXED_NUMBER = re.compile(r"\bWO\s*#?\s*-?\s*(\d{4,})\b", re.IGNORECASE)
_STANDALONE_NUMBER = re.compile(r"\b(\d{4,})\b")
_REPEATED_DIGIT = re.compile(r"^(\d)\1+$")


def digits_only(value: str) -> str:
    return re.sub(r"\D", "", value)


def normalize_candidate(value: str) -> str:
    """Strip a leading WO / WO# / Work Order prefix and keep only digits."""

    stripped = _WO_PREFIX.sub("", value)
    stripped = _WORK_ORDER_PREFIX.sub("", stripped)
    return digits_only(stripped)


def dedupe_stable(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value and value not in seen:
            seen.add(value)
            result.append(value)
    return result


def normalize_candidates(values: Iterable[str]) -> list[str]:
    return dedupe_stable(normalize_candidate(value) for value in values)


def extract_candidates_from_text(text: str, expected_digits: int) -> list[str]:
    """Scan text for work order numbers whose length is within one of expected.

    Prefixed matches ("WO 1234567", "WO#1234567", "WO-1234567") come first and
    suppress standalone runs of the same digits.
    """

    if not text:
        return []
    candidates: list[str] = []
    for match in _PREFIXED_NUMBER.finditer(text):
        if abs(len(match.group(1)) - expected_digits) <= 1:
            candidates.append(match.group(0))
    for match in _STANDALONE_NUMBER.finditer(text):
        digits = match.group(1)
        if any(digits in digits_only(existing) for existing in candidates):
            continue
        if abs(len(digits) - expected_digits) <= 1:
            candidates.append(digits)
    return dedupe_stable(candidates)


def validate_format(candidate: str, rule: TemplateRule) -> bool:
    if len(candidate) != rule.expected_digits:
        return False
    if rule.regex:
        return re.search(rule.regex, candidate) is not None
    return True


def is_plausible_work_order_number(value: str | None) -> bool:
    """Reject common OCR garbage such as "0000" or "1111"."""

    if not value:
        return False
    trimmed = value.strip()
    if len(trimmed) < 3:
        return False
    digits = digits_only(trimmed)
    if len(digits) < 3:
        return False
    if set(digits) == {"0"}:
        return False
    if _REPEATED_DIGIT.match(trimmed) and len(trimmed) <= 4:
        return False
    return True

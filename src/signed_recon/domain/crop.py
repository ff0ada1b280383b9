"""Crop regions for the work order number zone of a template.

A region is stored either as fractions of the page (legacy percentage mode)
or as PDF points measured from the top-left corner (points mode). The two
forms never mix: ``resolve_crop`` picks exactly one, and every conversion
dispatches on the concrete type.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from signed_recon.domain.models import TemplateConfig

POINTS_PER_INCH = 72
SENTINEL_TOLERANCE = 0.01
MIN_PERCENT_SIZE = 0.01
MIN_POINTS_SIZE = 8.0
RETRY_PAD_PCT = 0.015
RETRY_PAD_PT = 6.0
MIN_DPI = 100
MAX_DPI = 400

_EPSILON = 1e-9


class CropError(str, Enum):
    NOT_CONFIGURED = "NOT_CONFIGURED"
    INVALID = "INVALID"
    TOO_SMALL = "TOO_SMALL"


@dataclass(frozen=True)
class PercentCrop:
    x_pct: float
    y_pct: float
    w_pct: float
    h_pct: float


@dataclass(frozen=True)
class PointsCrop:
    x_pt: float
    y_pt: float
    w_pt: float
    h_pt: float
    page_width_pt: float
    page_height_pt: float


Crop = Union[PercentCrop, PointsCrop]


@dataclass(frozen=True)
class PixelCrop:
    x_px: int
    y_px: int
    w_px: int
    h_px: int


def resolve_crop(config: TemplateConfig) -> Crop | None:
    """Return the template's crop in whichever form it was saved, or None."""

    points = (
        config.x_pt,
        config.y_pt,
        config.w_pt,
        config.h_pt,
        config.page_width_pt,
        config.page_height_pt,
    )
    percent = (config.x_pct, config.y_pct, config.w_pct, config.h_pct)
    if _finite(*points) and all(value > 0 for value in points[2:]):
        return PointsCrop(*(float(value) for value in points))
    if any(value is not None for value in percent):
        return PercentCrop(*(_to_float(value) for value in percent))
    if any(value is not None for value in points):
        return PointsCrop(*(_to_float(value) for value in points))
    return None


def validate_crop(crop: Crop | None) -> CropError | None:
    """Return None when the crop is usable, otherwise the reason it is not."""

    if crop is None:
        return CropError.NOT_CONFIGURED
    if isinstance(crop, PercentCrop):
        return _validate_percent(crop)
    return _validate_points(crop)


def is_full_page(crop: Crop) -> bool:
    if isinstance(crop, PointsCrop):
        if not _finite(crop.page_width_pt, crop.page_height_pt):
            return False
        if crop.page_width_pt <= 0 or crop.page_height_pt <= 0:
            return False
        crop = points_to_percent(crop)
    return (
        abs(crop.x_pct) < SENTINEL_TOLERANCE
        and abs(crop.y_pct) < SENTINEL_TOLERANCE
        and abs(crop.w_pct - 1) < SENTINEL_TOLERANCE
        and abs(crop.h_pct - 1) < SENTINEL_TOLERANCE
    )


def sanitize_dpi(dpi: float | None, default: int = 200) -> int:
    if dpi is None or not _finite(dpi) or dpi == 0:
        return default
    return max(MIN_DPI, min(MAX_DPI, int(round(dpi))))


def render_size_px(
    page_width_pt: float, page_height_pt: float, dpi: int
) -> tuple[float, float]:
    """Raster size of a page rendered at ``dpi``."""

    scale = dpi / POINTS_PER_INCH
    return page_width_pt * scale, page_height_pt * scale


def pixel_crop(crop: Crop, image_width_px: float, image_height_px: float) -> PixelCrop:
    if isinstance(crop, PercentCrop):
        x, y = crop.x_pct * image_width_px, crop.y_pct * image_height_px
        w, h = crop.w_pct * image_width_px, crop.h_pct * image_height_px
    else:
        x = (crop.x_pt / crop.page_width_pt) * image_width_px
        y = (crop.y_pt / crop.page_height_pt) * image_height_px
        w = (crop.w_pt / crop.page_width_pt) * image_width_px
        h = (crop.h_pt / crop.page_height_pt) * image_height_px
    return PixelCrop(x_px=round(x), y_px=round(y), w_px=round(w), h_px=round(h))


def points_to_percent(crop: PointsCrop) -> PercentCrop:
    return PercentCrop(
        x_pct=crop.x_pt / crop.page_width_pt,
        y_pct=crop.y_pt / crop.page_height_pt,
        w_pct=crop.w_pt / crop.page_width_pt,
        h_pct=crop.h_pt / crop.page_height_pt,
    )


def percent_to_points(
    crop: PercentCrop, page_width_pt: float, page_height_pt: float
) -> PointsCrop:
    return PointsCrop(
        x_pt=crop.x_pct * page_width_pt,
        y_pt=crop.y_pct * page_height_pt,
        w_pt=crop.w_pct * page_width_pt,
        h_pt=crop.h_pct * page_height_pt,
        page_width_pt=page_width_pt,
        page_height_pt=page_height_pt,
    )


def expand_crop(crop: Crop, pad: float | None = None) -> Crop:
    """Grow the crop by ``pad`` on every side, clamped to the page."""

    if isinstance(crop, PercentCrop):
        pad = RETRY_PAD_PCT if pad is None else pad
        x = max(0.0, crop.x_pct - pad)
        y = max(0.0, crop.y_pct - pad)
        return PercentCrop(
            x_pct=x,
            y_pct=y,
            w_pct=min(1.0 - x, crop.w_pct + 2 * pad),
            h_pct=min(1.0 - y, crop.h_pct + 2 * pad),
        )
    pad = RETRY_PAD_PT if pad is None else pad
    x = max(0.0, crop.x_pt - pad)
    y = max(0.0, crop.y_pt - pad)
    return PointsCrop(
        x_pt=x,
        y_pt=y,
        w_pt=min(crop.page_width_pt - x, crop.w_pt + 2 * pad),
        h_pt=min(crop.page_height_pt - y, crop.h_pt + 2 * pad),
        page_width_pt=crop.page_width_pt,
        page_height_pt=crop.page_height_pt,
    )


def _validate_percent(crop: PercentCrop) -> CropError | None:
    if not _finite(crop.x_pct, crop.y_pct, crop.w_pct, crop.h_pct):
        return CropError.INVALID
    if is_full_page(crop):
        return CropError.NOT_CONFIGURED
    if (
        crop.x_pct < 0
        or crop.y_pct < 0
        or crop.w_pct <= 0
        or crop.h_pct <= 0
        or crop.x_pct + crop.w_pct > 1 + _EPSILON
        or crop.y_pct + crop.h_pct > 1 + _EPSILON
    ):
        return CropError.INVALID
    if crop.w_pct < MIN_PERCENT_SIZE or crop.h_pct < MIN_PERCENT_SIZE:
        return CropError.TOO_SMALL
    return None


def _validate_points(crop: PointsCrop) -> CropError | None:
    if not _finite(
        crop.x_pt, crop.y_pt, crop.w_pt, crop.h_pt, crop.page_width_pt, crop.page_height_pt
    ):
        return CropError.INVALID
    if crop.page_width_pt <= 0 or crop.page_height_pt <= 0:
        return CropError.INVALID
    if is_full_page(crop):
        return CropError.NOT_CONFIGURED
    if crop.x_pt < 0 or crop.y_pt < 0 or crop.w_pt <= 0 or crop.h_pt <= 0:
        return CropError.INVALID
    if (
        crop.x_pt + crop.w_pt > crop.page_width_pt + _EPSILON
        or crop.y_pt + crop.h_pt > crop.page_height_pt + _EPSILON
    ):
        return CropError.INVALID
    if crop.w_pt < MIN_POINTS_SIZE or crop.h_pt < MIN_POINTS_SIZE:
        return CropError.TOO_SMALL
    return None


def _finite(*values: object) -> bool:
    return all(
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
        for value in values
    )


def _to_float(value: object) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return math.nan
    return number

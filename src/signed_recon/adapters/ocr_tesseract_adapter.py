from __future__ import annotations

import base64
import io
import re

from signed_recon.domain.crop import pixel_crop
from signed_recon.domain.models import OcrRequest, OcrResponse
from signed_recon.ports.ocr_port import OCRPort
from signed_recon.settings import OCR_LANG

_DIGIT_RUN = re.compile(r"\d{3,}")


class TesseractOCRAdapter(OCRPort):
    """Local stand-in for the OCR service: render, crop, read digits."""

    def __init__(self, language: str | None = None) -> None:
        self._language = language or OCR_LANG

    def read_work_order_number(self, request: OcrRequest) -> OcrResponse:
        try:
            import pytesseract
        except ImportError as exc:
            raise RuntimeError(
                "pytesseract and Pillow are required for OCR. "
                "Install with: pip install pytesseract pillow"
            ) from exc

        page_image = self._render_page(request.pdf_bytes, request.page, request.dpi)
        width, height = page_image.size
        box = pixel_crop(request.crop, width, height)
        left = max(0, min(width, box.x_px))
        top = max(0, min(height, box.y_px))
        right = max(left + 1, min(width, box.x_px + box.w_px))
        bottom = max(top + 1, min(height, box.y_px + box.h_px))
        snippet = page_image.crop((left, top, right, bottom))

        try:
            processed = self._preprocess_image(snippet)
            raw_text = pytesseract.image_to_string(
                processed,
                lang=self._language,
                config="--oem 1 --psm 6",
            )
            mean_conf = self._mean_confidence(pytesseract, processed)
        except pytesseract.TesseractNotFoundError as exc:
            raise RuntimeError(
                "Tesseract OCR engine not found. Install tesseract-ocr and ensure it is on PATH."
            ) from exc
        except Exception as exc:
            raise RuntimeError("Failed to run OCR on the crop zone.") from exc

        confidence = 0.0 if mean_conf is None else max(0.0, min(1.0, mean_conf / 100.0))
        return OcrResponse(
            wo_number=self._pick_number(raw_text),
            raw_text=raw_text.strip(),
            confidence_raw=confidence,
            snippet_image_url=self._to_data_url(snippet),
        )

    def _render_page(self, pdf_bytes: bytes, page: int, dpi: int) -> object:
        try:
            from pdf2image import convert_from_bytes
        except ImportError as exc:
            raise RuntimeError(
                "pdf2image is required to OCR PDF files. Install with: pip install pdf2image. "
                "Poppler is also required on your system."
            ) from exc
        try:
            images = convert_from_bytes(pdf_bytes, dpi=dpi, first_page=page, last_page=page)
        except Exception as exc:
            raise RuntimeError("Failed to convert PDF bytes to images.") from exc
        if not images:
            raise RuntimeError(f"PDF has no page {page} to OCR.")
        return images[0]

    @staticmethod
    def _pick_number(text: str) -> str | None:
        runs = _DIGIT_RUN.findall(text or "")
        if not runs:
            return None
        return max(runs, key=len)

    def _mean_confidence(self, pytesseract: object, image: object) -> float | None:
        data = pytesseract.image_to_data(
            image,
            lang=self._language,
            output_type=pytesseract.Output.DICT,
        )
        conf_values: list[float] = []
        for value in data.get("conf", []):
            if value in (-1, "-1", None, ""):
                continue
            try:
                conf_values.append(float(value))
            except (TypeError, ValueError):
                continue
        if not conf_values:
            return None
        return sum(conf_values) / len(conf_values)

    @staticmethod
    def _preprocess_image(image: object) -> object:
        from PIL import Image, ImageFilter, ImageOps

        img = image.convert("L")
        img = ImageOps.autocontrast(img)
        img = img.filter(ImageFilter.SHARPEN)
        # Small crops read better upscaled.
        if max(img.size) < 600:
            img = img.resize(
                (img.size[0] * 3, img.size[1] * 3),
                resample=Image.BICUBIC,
            )
        return img

    @staticmethod
    def _to_data_url(image: object) -> str:
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        return f"data:image/png;base64,{encoded}"

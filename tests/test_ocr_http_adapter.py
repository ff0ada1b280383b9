from unittest.mock import Mock

import pytest
import requests

from signed_recon.adapters import ocr_http_adapter
from signed_recon.adapters.ocr_http_adapter import SignedOcrHttpAdapter
from signed_recon.domain.crop import PercentCrop
from signed_recon.domain.models import OcrRequest


def _request() -> OcrRequest:
    return OcrRequest(
        pdf_bytes=b"%PDF",
        filename="signed.pdf",
        template_id="tpl_acme",
        page=1,
        dpi=200,
        region=PercentCrop(0.6, 0.05, 0.3, 0.05),
    )


def _response(status_code=200, payload=None) -> Mock:
    response = Mock()
    response.status_code = status_code
    response.text = "error body"
    response.json.return_value = payload if payload is not None else {}
    return response


def test_posts_form_and_maps_response(monkeypatch) -> None:
    calls = []

    def fake_post(url, **kwargs):
        calls.append((url, kwargs))
        return _response(
            payload={
                "workOrderNumber": "1234567",
                "rawText": "WO 1234567",
                "confidence": 0.91,
                "snippetImageUrl": "data:image/png;base64,abc",
            }
        )

    monkeypatch.setattr(ocr_http_adapter.requests, "post", fake_post)
    adapter = SignedOcrHttpAdapter("http://ocr.local/", timeout=5)

    result = adapter.read_work_order_number(_request())

    assert result.wo_number == "1234567"
    assert result.raw_text == "WO 1234567"
    assert result.confidence_raw == 0.91
    assert result.snippet_image_url == "data:image/png;base64,abc"
    url, kwargs = calls[0]
    assert url == "http://ocr.local/v1/ocr/workorder-number/upload"
    assert kwargs["data"]["templateId"] == "tpl_acme"
    assert kwargs["data"]["xPct"] == "0.6"
    assert kwargs["files"]["file"] == ("signed.pdf", b"%PDF", "application/pdf")
    assert kwargs["timeout"] == 5


def test_confidence_is_coerced(monkeypatch) -> None:
    payloads = iter(
        [
            {"workOrderNumber": None, "confidence": "0.8"},
            {"workOrderNumber": 1234567, "confidence": "high"},
        ]
    )
    monkeypatch.setattr(
        ocr_http_adapter.requests,
        "post",
        lambda url, **kwargs: _response(payload=next(payloads)),
    )
    adapter = SignedOcrHttpAdapter("http://ocr.local")

    first = adapter.read_work_order_number(_request())
    second = adapter.read_work_order_number(_request())

    assert first.confidence_raw == 0.8
    assert first.wo_number is None
    assert second.confidence_raw == 0.0
    assert second.wo_number == "1234567"


def test_confidence_is_clamped_to_unit_range(monkeypatch) -> None:
    payloads = iter([{"confidence": 87}, {"confidence": "-0.2"}])
    monkeypatch.setattr(
        ocr_http_adapter.requests,
        "post",
        lambda url, **kwargs: _response(payload=next(payloads)),
    )
    adapter = SignedOcrHttpAdapter("http://ocr.local")

    assert adapter.read_work_order_number(_request()).confidence_raw == 1.0
    assert adapter.read_work_order_number(_request()).confidence_raw == 0.0


def test_error_status_raises(monkeypatch) -> None:
    monkeypatch.setattr(
        ocr_http_adapter.requests, "post", lambda url, **kwargs: _response(status_code=502)
    )
    adapter = SignedOcrHttpAdapter("http://ocr.local")

    with pytest.raises(RuntimeError, match="502"):
        adapter.read_work_order_number(_request())


def test_network_error_raises_runtime_error(monkeypatch) -> None:
    def fake_post(url, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(ocr_http_adapter.requests, "post", fake_post)
    adapter = SignedOcrHttpAdapter("http://ocr.local")

    with pytest.raises(RuntimeError, match="Failed to reach"):
        adapter.read_work_order_number(_request())


def test_non_json_body_raises(monkeypatch) -> None:
    response = _response()
    response.json.side_effect = ValueError("not json")
    monkeypatch.setattr(ocr_http_adapter.requests, "post", lambda url, **kwargs: response)
    adapter = SignedOcrHttpAdapter("http://ocr.local")

    with pytest.raises(RuntimeError, match="parse"):
        adapter.read_work_order_number(_request())


def test_missing_base_url_raises() -> None:
    with pytest.raises(RuntimeError, match="SIGNED_OCR_SERVICE_URL"):
        SignedOcrHttpAdapter("")

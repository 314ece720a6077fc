"""Tests for the OCR service client."""

import httpx

from sof_laytime.utils.ocr_client import INVALID_RESPONSE, NOT_CONFIGURED, OcrClient

ENDPOINT = "http://ocr.test/extract"


def client_for(handler) -> OcrClient:
    return OcrClient(ENDPOINT, timeout=5.0, transport=httpx.MockTransport(handler))


def test_extract_success():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = request.read()
        return httpx.Response(200, json={
            "events": [{"event": "NOR tendered", "start": "2025-02-15T10:00:00"}],
            "summary": {"vessel_name": "TESTER"},
            "warnings": ["page 2 blurred"],
        })

    result = client_for(handler).extract("sof.pdf", b"%PDF-1.4")

    assert result.ok
    assert result.events[0]["event"] == "NOR tendered"
    assert result.summary == {"vessel_name": "TESTER"}
    assert result.warnings == ["page 2 blurred"]
    assert seen["url"] == ENDPOINT
    assert b"sof.pdf" in seen["body"]


def test_not_configured():
    result = OcrClient(None).extract("sof.pdf", b"")
    assert not result.ok
    assert result.error == NOT_CONFIGURED
    assert result.events == []


def test_http_error_status():
    result = client_for(lambda request: httpx.Response(503, text="busy")).extract("sof.pdf", b"")

    assert result.error == "Service error (503): busy"
    assert result.events == []


def test_invalid_json_body():
    result = client_for(lambda request: httpx.Response(200, text="<html>")).extract("sof.pdf", b"")
    assert result.error == INVALID_RESPONSE


def test_missing_events_list():
    result = client_for(lambda request: httpx.Response(200, json={"summary": {}})).extract("sof.pdf", b"")
    assert result.error == INVALID_RESPONSE


def test_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = client_for(handler).extract("sof.pdf", b"")
    assert result.error == "connection refused"

"""Tests for the SOF normalization pipeline."""

from datetime import datetime, time

import httpx
import pytest

from sof_laytime.config import Settings
from sof_laytime.errors import PayloadError
from sof_laytime.models import DURATION, NormalizedEvent
from sof_laytime.sof_pipeline import (
    UNSPECIFIED_PORT,
    activities_from_sof,
    coerce_raw_items,
    ingest_document,
    laytime_events_from_sof,
    normalize,
)
from sof_laytime.utils.ocr_client import NOT_CONFIGURED, OcrClient

SCENARIO_A = {"events": [{"event": "15/Feb/2025"}, {"event": "14:30 All fast alongside"}]}


def test_date_then_time_line_maps_to_all_fast():
    result = normalize(SCENARIO_A)

    assert len(result.events) == 1
    event = result.events[0]
    assert event.from_datetime == datetime(2025, 2, 15, 14, 30)
    assert event.canonical_event == "NAV_ALL_FAST"
    assert event.canonical_confidence == 0.9


def test_low_confidence_event_excluded_from_accepted():
    payload = {"events": [
        {"event": "NOR tendered", "start": "2025-02-15T10:00:00", "confidence": 0.2},
        {"event": "Pilot on board", "start": "2025-02-15T11:00:00", "confidence": 0.9},
    ]}
    result = normalize(payload, confidence_floor=0.35)

    assert [ev.label for ev in result.events] == ["Pilot on board"]
    assert [ev.label for ev in result.filtered_out] == ["NOR tendered"]
    assert "Low confidence (< 0.35)" in result.filtered_out[0].warnings

    body = result.to_dict()
    assert body["meta"] == {"filteredOutCount": 1, "confidenceFloor": 0.35}
    assert body["filtered_out"][0]["event"] == "NOR tendered"


def test_invalid_confidence_floor_falls_back_to_default():
    assert normalize(SCENARIO_A, confidence_floor="high").confidence_floor == 0.35
    assert normalize(SCENARIO_A, confidence_floor=1.5).confidence_floor == 0.35
    assert normalize(SCENARIO_A, confidence_floor="0.5").confidence_floor == 0.5


def test_coerce_raw_items_aliases():
    items = coerce_raw_items([
        {"deduction_name": "Rain", "from_datetime": "2025-02-15T10:00:00", "end": "12:00", "page": "2"},
        {"notes": "Crew change", "portCallName": "Santos", "confidence": "0.7"},
        "not an object",
    ])

    assert len(items) == 2
    assert items[0].text == "Rain"
    assert items[0].start == datetime(2025, 2, 15, 10, 0)
    assert items[0].end == time(12, 0)
    assert items[0].page == 2
    assert items[1].port_call_ref == "Santos"
    assert items[1].confidence == 0.7


def test_event_label_alias_precedence():
    items = coerce_raw_items([{"event": "NOR tendered", "deduction_name": "Ignored", "notes": "Ignored"}])
    assert items[0].text == "NOR tendered"


def test_payload_shape_errors():
    with pytest.raises(PayloadError):
        normalize({"summary": {}})
    with pytest.raises(PayloadError):
        normalize({"events": "nope"})
    with pytest.raises(PayloadError):
        normalize(["events"])


def test_summary_precedence():
    service = normalize({"events": SCENARIO_A["events"], "summary": {"vessel_name": "FROM SERVICE"}})
    assert service.summary.vessel_name == "FROM SERVICE"

    header = normalize({"events": SCENARIO_A["events"], "header": {"port_name": "Santos"}})
    assert header.summary.port_name == "Santos"

    extracted = normalize({"events": [{"event": "Vessel: MV TESTER"}] + SCENARIO_A["events"]})
    assert extracted.summary.vessel_name == "TESTER"

    placeholder = normalize(SCENARIO_A)
    assert placeholder.summary.port_name == UNSPECIFIED_PORT


def test_unmapped_labels_are_tallied():
    result = normalize({"events": [
        {"event": "Crew change", "start": "2025-02-15T10:00:00"},
        {"event": "Crew change", "start": "2025-02-15T11:00:00"},
        {"event": "All fast", "start": "2025-02-15T12:00:00"},
    ]})
    assert result.unmapped_labels == [("Crew change", 2)]
    assert result.to_dict()["unmapped_labels"] == [{"label": "Crew change", "count": 2}]


def test_ingest_document_via_service():
    def handler(request):
        return httpx.Response(200, json=SCENARIO_A)

    client = OcrClient("http://ocr.test/extract", transport=httpx.MockTransport(handler))
    result = ingest_document("sof.pdf", b"%PDF", Settings(ocr_endpoint="http://ocr.test/extract"), client)

    assert result.error is None
    assert result.events[0].canonical_event == "NAV_ALL_FAST"


def test_ingest_document_not_configured():
    result = ingest_document("sof.pdf", b"%PDF", Settings())

    assert result.error == NOT_CONFIGURED
    assert result.events == []


def test_ingest_document_service_error_without_local_text():
    client = OcrClient(
        "http://ocr.test/extract", transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down"))
    )
    result = ingest_document("sof.pdf", b"%PDF", Settings(ocr_endpoint="http://ocr.test/extract"), client)

    assert result.error == "Service error (500): down"
    assert result.events == []


def test_ingest_document_local_text_layer():
    settings = Settings(enable_local_text=True)
    result = ingest_document("sof.txt", b"15/Feb/2025\n14:30 All fast alongside\n", settings)

    assert result.error is None
    assert result.events[0].canonical_event == "NAV_ALL_FAST"
    assert "Extracted from local text layer" in result.warnings


def test_laytime_events_from_sof():
    events = [
        NormalizedEvent(
            label="Rain delay",
            from_datetime=datetime(2025, 2, 15, 10, 0),
            to_datetime=datetime(2025, 2, 15, 12, 0),
            event_type=DURATION,
        ),
        NormalizedEvent(label="NOR tendered", from_datetime=datetime(2025, 2, 15, 8, 0)),
    ]
    converted = laytime_events_from_sof(events, rate_of_calculation=50.0, port_call_id="pc1")

    assert len(converted) == 1
    assert converted[0].port_call_id == "pc1"
    assert converted[0].hours() == pytest.approx(1.0)


def test_activities_from_sof():
    events = [
        NormalizedEvent(
            label="Commenced loading",
            from_datetime=datetime(2025, 2, 15, 10, 0),
            to_datetime=datetime(2025, 2, 15, 11, 30),
            canonical_event="CARGO_OPS_START",
        ),
        NormalizedEvent(label="Open", from_datetime=datetime(2025, 2, 15, 12, 0)),
    ]
    activities = activities_from_sof(events, "pc1", count_behavior="HALF")

    assert len(activities) == 1
    assert activities[0]["duration_minutes"] == pytest.approx(90)
    assert activities[0]["count_behavior"] == "HALF"

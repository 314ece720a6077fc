"""Shared fixtures for the SOF laytime tests."""

from datetime import datetime

import pytest

from sof_laytime.models import RawLineItem


def line(text: str, confidence=None, start=None, end=None) -> RawLineItem:
    return RawLineItem(text=text, confidence=confidence, start=start, end=end)


@pytest.fixture
def header_lines():
    return [
        line("Vessel: MV TESTER"),
        line("IMO No: 9876543"),
        line("Port of Vancouver, Canada"),
        line("Terminal: Cascade Grain Berth 2"),
        line("Cargo: Wheat Grain 51900 MT"),
        line("15 FEB 2025 – 02:30"),
        line("All fast alongside"),
    ]


@pytest.fixture
def window_48h():
    return datetime(2025, 2, 1, 0, 0), datetime(2025, 2, 3, 0, 0)


@pytest.fixture
def voyage_payload():
    return {
        "voyage": {"id": "v1"},
        "cp_list": [{
            "laytime_allowed_value": 1,
            "laytime_allowed_unit": "DAYS",
            "demurrage_rate_per_day": 14400,
            "despatch_rate_per_day": 7200,
        }],
        "cargoes": [{"id": "c1", "cargo_name": "Wheat", "quantity": 25000}],
        "port_calls": [
            {"id": "pc1", "port_name": "Santos", "activity": "load"},
            {"id": "pc2", "port_name": "Rotterdam", "activity": "discharge"},
        ],
        "activities": [
            {"port_call_id": "pc1", "duration_minutes": 2000, "count_behavior": "FULL"},
            {"port_call_id": "pc2", "duration_minutes": 1000, "count_behavior": "FULL"},
        ],
        "deductions": [],
    }

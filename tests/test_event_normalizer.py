"""Tests for the SOF event normalizer."""

from datetime import date, datetime

from conftest import line
from sof_laytime.errors import NO_DATE_CONTEXT, START_AFTER_END
from sof_laytime.models import DURATION, INSTANT
from sof_laytime.utils.event_normalizer import merge_table_rows, noise_reason, normalize_sof_events


def test_date_line_sets_context_for_following_time():
    events, _ = normalize_sof_events([line("15/Feb/2025"), line("14:30 All fast alongside")])

    assert len(events) == 1
    assert events[0].label == "All fast alongside"
    assert events[0].from_datetime == datetime(2025, 2, 15, 14, 30)
    assert events[0].to_datetime == events[0].from_datetime
    assert events[0].event_type == INSTANT
    assert events[0].canonical_event is None


def test_date_only_line_emits_nothing():
    events, _ = normalize_sof_events([line("15/Feb/2025")])
    assert events == []


def test_date_context_carries_forward():
    events, _ = normalize_sof_events([
        line("15/Feb/2025"),
        line("08:00 Pilot on board"),
        line("16/Feb/2025"),
        line("09:15 Commenced loading"),
        line("11:40 Stopped loading"),
    ])
    assert [ev.from_datetime for ev in events] == [
        datetime(2025, 2, 15, 8, 0),
        datetime(2025, 2, 16, 9, 15),
        datetime(2025, 2, 16, 11, 40),
    ]


def test_pending_datetime_is_consumed_by_next_event():
    events, _ = normalize_sof_events([
        line("15/Feb/2025"),
        line("08:00 Pilot on board"),
        line("16:00 --"),
        line("NOR tendered"),
    ])
    assert [ev.label for ev in events] == ["Pilot on board", "NOR tendered"]
    assert events[1].from_datetime == datetime(2025, 2, 15, 16, 0)


def test_time_without_date_context_is_flagged():
    events, _ = normalize_sof_events([line("14:30 Pilot on board")])

    assert len(events) == 1
    assert events[0].from_datetime is None
    assert NO_DATE_CONTEXT in events[0].warnings


def test_bare_time_without_date_context_keeps_next_label():
    events, _ = normalize_sof_events([line("14:30"), line("Pilot on board")])

    assert len(events) == 1
    assert events[0].label == "Pilot on board"
    assert events[0].from_datetime is None
    assert NO_DATE_CONTEXT in events[0].warnings


def test_time_range_gives_duration():
    events, _ = normalize_sof_events([line("15/Feb/2025"), line("10:00 - 12:30 Rain delay")])

    assert events[0].label == "Rain delay"
    assert events[0].from_datetime == datetime(2025, 2, 15, 10, 0)
    assert events[0].to_datetime == datetime(2025, 2, 15, 12, 30)
    assert events[0].event_type == DURATION


def test_time_range_across_midnight():
    events, _ = normalize_sof_events([line("15/Feb/2025"), line("23:00 - 02:00 Shifting to berth 4")])
    assert events[0].to_datetime == datetime(2025, 2, 16, 2, 0)


def test_duration_keyword_without_interval():
    events, _ = normalize_sof_events([line("15/Feb/2025"), line("13:00 Weather stoppage")])
    assert events[0].event_type == DURATION
    assert events[0].from_datetime == events[0].to_datetime


def test_explicit_inverted_range_is_flagged():
    events, _ = normalize_sof_events([
        line("Crane breakdown", start=datetime(2025, 2, 15, 16, 0), end=datetime(2025, 2, 15, 15, 0)),
    ])
    assert START_AFTER_END in events[0].warnings


def test_headings_and_field_lines_are_not_events():
    events, summary = normalize_sof_events([
        line("STATEMENT OF FACTS"),
        line("Vessel: MV OCEAN STAR"),
        line("15/Feb/2025"),
        line("Remarks"),
        line("09:00 Hatches opened"),
        line("Master: signature"),
    ])
    assert [ev.label for ev in events] == ["Hatches opened"]
    assert summary.vessel_name == "OCEAN STAR"


def test_noise_reason():
    assert noise_reason("STATEMENT OF FACTS") == "section heading"
    assert noise_reason("Remarks") == "column heading"
    assert noise_reason("Remarks: rain showers") is None
    assert noise_reason("Agent: John Smith") == "signature block"
    assert noise_reason("25,000 MT") == "quantity line"
    assert noise_reason("Pilot on board") is None


def test_descriptive_line_after_timeline_is_kept():
    events, _ = normalize_sof_events([
        line("15/Feb/2025"),
        line("08:00 Pilot on board"),
        line("Heavy swell at berth"),
    ])
    assert events[-1].label == "Heavy swell at berth"
    assert events[-1].from_datetime is None


def test_merge_label_then_datetimes():
    rows = merge_table_rows([
        line("Pilot on board", confidence=0.9),
        line("15/Feb/2025 14:30", confidence=0.6),
        line("15/Feb/2025 16:00", confidence=0.8),
    ])
    assert len(rows) == 1
    assert rows[0].text == "Pilot on board"
    assert rows[0].start == datetime(2025, 2, 15, 14, 30)
    assert rows[0].end == datetime(2025, 2, 15, 16, 0)
    assert rows[0].confidence == 0.6


def test_merge_datetime_then_label():
    rows = merge_table_rows([line("15/Feb/2025 14:30"), line("NOR tendered", confidence=0.7)])
    assert len(rows) == 1
    assert rows[0].text == "NOR tendered"
    assert rows[0].start == datetime(2025, 2, 15, 14, 30)
    assert rows[0].confidence == 0.7


def test_merge_date_time_label():
    items = [line("15/Feb/2025"), line("14:30"), line("Commenced loading")]
    rows = merge_table_rows(items)
    assert len(rows) == 1
    assert rows[0].start == datetime(2025, 2, 15, 14, 30)

    events, _ = normalize_sof_events(items)
    assert events[0].label == "Commenced loading"
    assert events[0].from_datetime == datetime(2025, 2, 15, 14, 30)


def test_fallback_emits_explicit_rows_when_timeline_is_empty():
    events, _ = normalize_sof_events([
        line("Notes", start=datetime(2025, 2, 15, 8, 0), end=datetime(2025, 2, 15, 10, 0)),
    ])
    assert len(events) == 1
    assert events[0].label == "Notes"
    assert events[0].event_type == DURATION


def test_header_is_collected_alongside_events(header_lines):
    events, summary = normalize_sof_events(header_lines)

    assert len(events) >= 1
    assert events[0].label == "All fast alongside"
    assert events[0].from_datetime == datetime(2025, 2, 15, 2, 30)
    assert summary.vessel_name == "TESTER"
    assert summary.imo == "9876543"


def test_laycan_range_in_header():
    _, summary = normalize_sof_events([line("Laycan: 11-15 February 2026")])
    assert summary.laycan_start == date(2026, 2, 11)
    assert summary.laycan_end == date(2026, 2, 15)

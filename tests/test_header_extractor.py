"""Tests for SOF header extraction."""

from conftest import line
from sof_laytime.models import SofSummary
from sof_laytime.sof_pipeline import normalize_items
from sof_laytime.utils.event_normalizer import normalize_sof_events
from sof_laytime.utils.header_extractor import (
    best_quantity,
    capture_pending,
    clean_terminal,
    clean_vessel_name,
    finalize_summary,
    harvest_explicit,
    is_field_line,
    parse_quantity,
)


def test_full_header_block(header_lines):
    result = normalize_items(header_lines)
    summary = result.summary

    assert summary.vessel_name == "TESTER"
    assert summary.imo == "9876543"
    assert "Vancouver" in summary.port_name
    assert "Cascade Grain" in summary.terminal
    assert "wheat" in summary.cargo_name.lower()
    assert summary.cargo_quantity == "51900 mt"
    assert len(result.events) >= 1


def test_port_of_and_berth_lines():
    _, summary = normalize_sof_events([line("Port of Santos - Brazil"), line("Berth: TEV Quay 3")])

    assert "santos" in summary.port_name.lower()
    assert summary.terminal == "TEV Quay 3"


def test_bare_imo_and_mv_line():
    _, summary = normalize_sof_events([line("MV TESTER"), line("9876543")])

    assert summary.vessel_name == "TESTER"
    assert summary.imo == "9876543"


def test_label_on_its_own_line_takes_next_value():
    _, summary = normalize_sof_events([
        line("Vessel Name:"),
        line("Nordic Breeze"),
        line("Quantity:"),
        line("32,500.5 tonnes"),
    ])
    assert summary.vessel_name == "Nordic Breeze"
    assert summary.cargo_quantity == "32500.5 tonnes"


def test_first_value_wins():
    summary = harvest_explicit(SofSummary(), "Port: Santos")
    summary = harvest_explicit(summary, "Port: Paranagua")
    assert summary.port_name == "Santos"


def test_operation_type_from_text():
    assert harvest_explicit(SofSummary(), "Discharge port: Rotterdam").operation_type == "discharge"
    assert harvest_explicit(SofSummary(), "Loading port: Santos").operation_type == "load"


def test_parse_quantity_requires_unit():
    assert parse_quantity("Cargo: 25,000 MT wheat") == (25000.0, "mt")
    assert parse_quantity("3200.5 tonnes") == (3200.5, "tonnes")
    assert parse_quantity("Berth 25000") is None


def test_best_quantity_picks_largest_hinted_figure():
    lines = ["Intended 40,000 MT", "Final loaded 41,250 MT", "Figure 12,000 MT", "Draft 12.5 m"]
    assert best_quantity(lines) == "41250 mt"
    assert best_quantity(["Draft 12.5 m"]) is None


def test_clean_vessel_name():
    assert clean_vessel_name("MV Ocean Star - Flag Panama") == "Ocean Star"
    assert clean_vessel_name("M/V  Pacific   Dawn") == "Pacific Dawn"
    assert clean_vessel_name("name") is None
    assert clean_vessel_name(None) is None


def test_clean_terminal_rejects_single_tokens_and_numbers():
    assert clean_terminal("TEV Quay 3") == "TEV Quay 3"
    assert clean_terminal("Cargill") is None
    assert clean_terminal("12 34") is None


def test_is_field_line():
    assert is_field_line("Vessel: MV TESTER")
    assert is_field_line("Flag Panama")
    assert is_field_line("Loading port: Santos")
    assert not is_field_line("Vessel arrived at anchorage")
    assert not is_field_line("Pilot on board")


def test_capture_pending_imo_requires_seven_digits():
    assert capture_pending(SofSummary(), "imo", "IMO 9876543").imo == "9876543"
    assert capture_pending(SofSummary(), "imo", "98765").imo is None


def test_finalize_strips_cargo_tail_and_fills_quantity():
    summary = SofSummary(vessel_name="OCEAN STAR Cargo: Wheat")
    summary = finalize_summary(summary, ["Quantity loaded 30,000 MT"])

    assert summary.vessel_name == "OCEAN STAR"
    assert summary.cargo_quantity == "30000 mt"

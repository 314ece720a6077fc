"""Tests for the cargo x port proration engine."""

import pytest

from sof_laytime.errors import ConfigurationError, PayloadError
from sof_laytime.laytime_engine import (
    apply_count_behavior,
    calculate_from_payload,
    calculate_laytime,
    convert_allowed,
    entry_minutes,
)

CP = {
    "laytime_allowed_value": 1,
    "laytime_allowed_unit": "DAYS",
    "demurrage_rate_per_day": 14400,
    "despatch_rate_per_day": 7200,
}
PORTS = [
    {"id": "pc1", "port_name": "Santos", "activity": "load"},
    {"id": "pc2", "port_name": "Rotterdam", "activity": "discharge"},
]
ACTIVITIES = [
    {"port_call_id": "pc1", "duration_minutes": 2000, "count_behavior": "FULL"},
    {"port_call_id": "pc2", "duration_minutes": 1000, "count_behavior": "FULL"},
]


def rows_by_port(result):
    return {row.port_call_id: row for row in result.cargo_port_rows}


def test_count_behaviors():
    assert apply_count_behavior(60, "FULL") == 60
    assert apply_count_behavior(60, "HALF") == 30
    assert apply_count_behavior(60, "NONE") == 0
    assert apply_count_behavior(60, {"percent": 25}) == pytest.approx(15)
    assert apply_count_behavior(60, None) == 60
    assert apply_count_behavior(60, "SOMETIMES") == 60


def test_convert_allowed_units():
    assert convert_allowed({"laytime_allowed_value": 10, "laytime_allowed_unit": "HOURS"}, {}) == 600
    assert convert_allowed({"laytime_allowed_value": 2, "laytime_allowed_unit": "DAYS"}, {}) == 2880
    assert convert_allowed(
        {"laytime_allowed_value": 5000, "laytime_allowed_unit": "TONNES_PER_DAY"}, {"quantity": 10000}
    ) == pytest.approx(2880)
    assert convert_allowed({"laytime_allowed_value": 5000, "laytime_allowed_unit": "TONNES_PER_DAY"}, {}) == 0
    assert convert_allowed(None, {}) == 0


def test_entry_minutes():
    assert entry_minutes({"flat_duration_minutes": 45}) == 45
    assert entry_minutes({
        "from_datetime": "2025-02-15T10:00:00",
        "to_datetime": "2025-02-15T12:30:00",
    }) == pytest.approx(150)
    assert entry_minutes({
        "from_datetime": "2025-02-15T12:30:00",
        "to_datetime": "2025-02-15T10:00:00",
    }) == 0


def test_standard_method_settles_each_port_separately():
    result = calculate_laytime(None, [CP], [{"id": "c1", "quantity": 25000}], PORTS, ACTIVITIES, [])
    rows = rows_by_port(result)

    assert rows["pc1"].time_on_demurrage_minutes == pytest.approx(560)
    assert rows["pc2"].time_on_despatch_minutes == pytest.approx(440)
    assert rows["pc1"].reversible_group_id is None
    assert result.totals.demurrage_amount == pytest.approx(5600)
    assert result.totals.despatch_amount == pytest.approx(2200)


def test_reversible_method_pools_ports():
    result = calculate_laytime(
        None, [CP], [{"id": "c1", "quantity": 25000}], PORTS, ACTIVITIES, [], method="REVERSIBLE"
    )
    rows = rows_by_port(result)

    assert rows["pc1"].time_on_demurrage_minutes == pytest.approx(80)
    assert rows["pc2"].time_on_demurrage_minutes == pytest.approx(40)
    assert rows["pc1"].time_on_despatch_minutes == 0
    assert rows["pc1"].reversible_group_id == "rev-0"
    assert result.totals.time_on_demurrage_minutes == pytest.approx(120)


def test_group_shares_sum_to_group_over():
    cargoes = [{"id": "c1", "quantity": 10000}, {"id": "c2", "quantity": 30000}]
    cp = {"laytime_allowed_value": 10000, "laytime_allowed_unit": "TONNES_PER_DAY"}
    activities = [{"port_call_id": "pc1", "duration_minutes": 9000}]
    result = calculate_laytime(None, [cp], cargoes, PORTS[:1], activities, [])

    allowed = sum(r.laytime_allowed_minutes for r in result.cargo_port_rows)
    used = sum(r.laytime_used_minutes for r in result.cargo_port_rows)
    demurrage = sum(r.time_on_demurrage_minutes for r in result.cargo_port_rows)
    assert allowed == pytest.approx(1440 + 4320)
    assert demurrage == pytest.approx(used - allowed)


def test_despatch_is_shared_by_allowed_time():
    cargoes = [{"id": "c1", "quantity": 10000}, {"id": "c2", "quantity": 30000}]
    cp = {"laytime_allowed_value": 10000, "laytime_allowed_unit": "TONNES_PER_DAY"}
    activities = [{"port_call_id": "pc1", "duration_minutes": 1000}]
    result = calculate_laytime(None, [cp], cargoes, PORTS[:1], activities, [])
    rows = {row.cargo_id: row for row in result.cargo_port_rows}

    assert rows["c1"].time_on_despatch_minutes == pytest.approx(3760 * 1440 / 5760)
    assert rows["c2"].time_on_despatch_minutes == pytest.approx(3760 * 4320 / 5760)


def test_deductions_scoped_to_cargo():
    cargoes = [{"id": "c1", "quantity": 1}, {"id": "c2", "quantity": 1}]
    deductions = [
        {"port_call_id": "pc1", "type": "DEDUCTION", "flat_duration_minutes": 100, "applies_to_cargo_ids": ["c1"]},
        {"port_call_id": "pc1", "type": "ADDITION", "flat_duration_minutes": 30},
    ]
    result = calculate_laytime(None, [CP], cargoes, PORTS[:1], ACTIVITIES[:1], deductions)
    rows = {row.cargo_id: row for row in result.cargo_port_rows}

    assert rows["c1"].laytime_used_minutes == pytest.approx(2000 - 100 + 30)
    assert rows["c2"].laytime_used_minutes == pytest.approx(2000 + 30)
    assert rows["c2"].deductions_minutes == 0


def test_port_allowed_hours_override_charter_party():
    ports = [{"id": "pc1", "activity": "load", "allowed_hours": 30}]
    result = calculate_laytime(None, [CP], [{"id": "c1"}], ports, [], [])
    assert result.cargo_port_rows[0].laytime_allowed_minutes == 1800


def test_scope_limits_port_calls():
    result = calculate_laytime(
        None, [CP], [{"id": "c1"}], PORTS, ACTIVITIES, [], method="REVERSIBLE", scope="load_only"
    )
    assert [row.port_call_id for row in result.cargo_port_rows] == ["pc1"]


def test_unknown_method_raises():
    with pytest.raises(ConfigurationError):
        calculate_laytime(None, [CP], [{"id": "c1"}], PORTS, [], [], method="FASTEST")


def test_calculate_from_payload(voyage_payload):
    payload = calculate_from_payload(voyage_payload).to_dict()

    assert len(payload["cargoPortRows"]) == 2
    assert payload["totals"]["timeOnDemurrageMinutes"] == pytest.approx(560)
    assert payload["calculationLog"][0] == "Method: STANDARD, scope: all_ports"


def test_calculate_from_payload_requires_lists():
    with pytest.raises(PayloadError):
        calculate_from_payload({"cargoes": [], "port_calls": "pc1"})
    with pytest.raises(PayloadError):
        calculate_from_payload([])

"""
Laytime Proration Engine
Cargo x port laytime matrix for multi-cargo voyages.

Allowed and used time are worked out per (cargo, port call) pair; time on
demurrage/despatch is then distributed inside each group of port calls.
All durations are in minutes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .errors import ConfigurationError, PayloadError
from .laytime import ALL_PORTS, safe_float, scope_allows, to_naive_datetime

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 1440
STANDARD = "STANDARD"
REVERSIBLE = "REVERSIBLE"
AVERAGE = "AVERAGE"
CALCULATION_METHODS = (STANDARD, REVERSIBLE, AVERAGE)

COUNT_WEIGHTS = {"FULL": 1.0, "HALF": 0.5, "NONE": 0.0}


@dataclass
class CargoPortRow:
    cargo_id: str
    port_call_id: str
    laytime_allowed_minutes: float = 0.0
    laytime_used_minutes: float = 0.0
    deductions_minutes: float = 0.0
    additions_minutes: float = 0.0
    time_on_demurrage_minutes: float = 0.0
    time_on_despatch_minutes: float = 0.0
    reversible_group_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cargoId": self.cargo_id,
            "portCallId": self.port_call_id,
            "laytimeAllowedMinutes": self.laytime_allowed_minutes,
            "laytimeUsedMinutes": self.laytime_used_minutes,
            "deductionsMinutes": self.deductions_minutes,
            "additionsMinutes": self.additions_minutes,
            "timeOnDemurrageMinutes": self.time_on_demurrage_minutes,
            "timeOnDespatchMinutes": self.time_on_despatch_minutes,
            "reversibleGroupId": self.reversible_group_id,
        }


@dataclass
class EngineTotals:
    time_allowed_minutes: float = 0.0
    time_used_minutes: float = 0.0
    time_on_demurrage_minutes: float = 0.0
    time_on_despatch_minutes: float = 0.0
    demurrage_amount: float = 0.0
    despatch_amount: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            "timeAllowedMinutes": self.time_allowed_minutes,
            "timeUsedMinutes": self.time_used_minutes,
            "timeOnDemurrageMinutes": self.time_on_demurrage_minutes,
            "timeOnDespatchMinutes": self.time_on_despatch_minutes,
            "demurrageAmount": self.demurrage_amount,
            "despatchAmount": self.despatch_amount,
        }


@dataclass
class EngineResult:
    cargo_port_rows: List[CargoPortRow]
    totals: EngineTotals
    calculation_log: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cargoPortRows": [row.to_dict() for row in self.cargo_port_rows],
            "totals": self.totals.to_dict(),
            "calculationLog": list(self.calculation_log),
        }


def convert_allowed(cp: Optional[Dict[str, Any]], cargo: Dict[str, Any]) -> float:
    """Charter-party laytime allowance in minutes for one cargo."""
    if not cp:
        return 0.0
    value = safe_float(cp.get("laytime_allowed_value"))
    if value <= 0:
        return 0.0
    unit = cp.get("laytime_allowed_unit")
    if unit == "HOURS":
        return value * 60
    if unit == "DAYS":
        return value * MINUTES_PER_DAY
    if unit == "TONNES_PER_DAY":
        qty = safe_float(cargo.get("quantity"))
        if qty <= 0:
            return 0.0
        return (qty / value) * MINUTES_PER_DAY
    return 0.0


def allowed_for_port(port: Dict[str, Any], cp: Optional[Dict[str, Any]], cargo: Dict[str, Any]) -> float:
    hours = safe_float(port.get("allowed_hours"), None)
    if hours is not None:
        return hours * 60
    return convert_allowed(cp, cargo)


def apply_count_behavior(duration_minutes: float, behavior: Any) -> float:
    """
    Weight an activity duration.

    "FULL", "HALF" and "NONE" map to 1, 0.5 and 0; ``{"percent": p}`` weights by
    p/100. Anything else counts in full.
    """
    if isinstance(behavior, dict) and "percent" in behavior:
        percent = safe_float(behavior.get("percent"), None)
        return duration_minutes * (percent / 100.0) if percent is not None else duration_minutes
    if isinstance(behavior, str):
        return duration_minutes * COUNT_WEIGHTS.get(behavior.upper(), 1.0)
    return duration_minutes


def entry_minutes(entry: Dict[str, Any]) -> float:
    """Flat minutes if given, otherwise the positive span of from/to."""
    flat = safe_float(entry.get("flat_duration_minutes"))
    if flat:
        return flat
    start = to_naive_datetime(entry.get("from_datetime"))
    end = to_naive_datetime(entry.get("to_datetime"))
    if start and end and end > start:
        return (end - start).total_seconds() / 60.0
    return 0.0


def _applies_to(entry: Dict[str, Any], cargo_id: str) -> bool:
    cargo_ids = entry.get("applies_to_cargo_ids") or []
    return not cargo_ids or cargo_id in cargo_ids


def _activity_minutes(activity: Dict[str, Any]) -> float:
    minutes = safe_float(activity.get("duration_minutes"), None)
    if minutes is None:
        minutes = entry_minutes(activity)
    return max(minutes, 0.0)


def _groups(method: str, port_calls: Sequence[Dict[str, Any]], reversible_groups) -> List[List[str]]:
    port_ids = [str(pc.get("id")) for pc in port_calls]
    if method == REVERSIBLE:
        if reversible_groups:
            return [[str(pid) for pid in group] for group in reversible_groups]
        return [port_ids]
    return [[pid] for pid in port_ids]


def calculate_laytime(
    voyage: Optional[Dict[str, Any]],
    cp_list: Sequence[Dict[str, Any]],
    cargoes: Sequence[Dict[str, Any]],
    port_calls: Sequence[Dict[str, Any]],
    activities: Sequence[Dict[str, Any]],
    deductions: Sequence[Dict[str, Any]],
    method: str = STANDARD,
    scope: Optional[str] = None,
    reversible_groups: Optional[List[List[str]]] = None,
) -> EngineResult:
    """
    Build the cargo x port laytime matrix and distribute over/under time.

    Within each group, time over allowance is shared as demurrage in
    proportion to each row's used time; time saved is shared as despatch in
    proportion to each row's allowed time.

    Args:
        voyage: Voyage record (informational)
        cp_list: Charter parties; the first supplies the allowance and rates
        cargoes: Cargo records with id and quantity
        port_calls: Port calls with id, activity and optional allowed_hours
        activities: Logged activities with port_call_id, duration and count_behavior
        deductions: DEDUCTION/ADDITION entries, optionally scoped to cargo ids
        method: STANDARD, AVERAGE or REVERSIBLE
        scope: all_ports, load_only or discharge_only
        reversible_groups: Port call id groups for REVERSIBLE

    Returns:
        EngineResult with per-pair rows and totals
    """
    method = (method or STANDARD).upper()
    if method not in CALCULATION_METHODS:
        raise ConfigurationError(f"Unknown calculation method: {method}")
    scope = scope or ALL_PORTS

    cp = cp_list[0] if cp_list else None
    log: List[str] = [f"Method: {method}, scope: {scope}"]
    if voyage:
        log.append(f"Voyage: {voyage.get('id', '')}")
    scoped_ports = [pc for pc in port_calls if scope_allows(scope, pc.get("activity"))]

    rows: List[CargoPortRow] = []
    for cargo in cargoes:
        cargo_id = str(cargo.get("id"))
        for pc in scoped_ports:
            pc_id = str(pc.get("id"))
            allowed = allowed_for_port(pc, cp, cargo)
            used_raw = sum(
                apply_count_behavior(_activity_minutes(act), act.get("count_behavior"))
                for act in activities
                if str(act.get("port_call_id")) == pc_id
            )
            port_entries = [
                d for d in deductions if str(d.get("port_call_id")) == pc_id and _applies_to(d, cargo_id)
            ]
            deducted = sum(entry_minutes(d) for d in port_entries if d.get("type") == "DEDUCTION")
            added = sum(entry_minutes(d) for d in port_entries if d.get("type") == "ADDITION")
            rows.append(
                CargoPortRow(
                    cargo_id=cargo_id,
                    port_call_id=pc_id,
                    laytime_allowed_minutes=allowed,
                    laytime_used_minutes=max(used_raw - deducted + added, 0.0),
                    deductions_minutes=deducted,
                    additions_minutes=added,
                )
            )

    for idx, group in enumerate(_groups(method, port_calls, reversible_groups)):
        group_rows = [r for r in rows if r.port_call_id in group]
        group_allowed = sum(r.laytime_allowed_minutes for r in group_rows)
        group_used = sum(r.laytime_used_minutes for r in group_rows)
        over = group_used - group_allowed
        group_id = f"rev-{idx}" if method == REVERSIBLE else None

        if over > 0 and group_used > 0:
            for r in group_rows:
                r.time_on_demurrage_minutes = over * (r.laytime_used_minutes / group_used)
                r.reversible_group_id = group_id
        elif over < 0 and group_allowed > 0:
            for r in group_rows:
                r.time_on_despatch_minutes = -over * (r.laytime_allowed_minutes / group_allowed)
                r.reversible_group_id = group_id
        if group_rows:
            log.append(
                f"Group {idx}: allowed {group_allowed:.2f} min, used {group_used:.2f} min, over {over:.2f} min"
            )

    totals = EngineTotals(
        time_allowed_minutes=sum(r.laytime_allowed_minutes for r in rows),
        time_used_minutes=sum(r.laytime_used_minutes for r in rows),
        time_on_demurrage_minutes=sum(r.time_on_demurrage_minutes for r in rows),
        time_on_despatch_minutes=sum(r.time_on_despatch_minutes for r in rows),
    )
    if cp:
        totals.demurrage_amount = (
            totals.time_on_demurrage_minutes / MINUTES_PER_DAY * safe_float(cp.get("demurrage_rate_per_day"))
        )
        totals.despatch_amount = (
            totals.time_on_despatch_minutes / MINUTES_PER_DAY * safe_float(cp.get("despatch_rate_per_day"))
        )

    logger.debug("Laytime matrix: %d rows across %d cargoes", len(rows), len(cargoes))
    return EngineResult(cargo_port_rows=rows, totals=totals, calculation_log=log)


def calculate_from_payload(payload: Dict[str, Any]) -> EngineResult:
    if not isinstance(payload, dict):
        raise PayloadError("Request body must be an object")
    for key in ("cargoes", "port_calls"):
        if not isinstance(payload.get(key), list):
            raise PayloadError(f"'{key}' must be a list")
    return calculate_laytime(
        voyage=payload.get("voyage"),
        cp_list=payload.get("cp_list") or [],
        cargoes=payload["cargoes"],
        port_calls=payload["port_calls"],
        activities=payload.get("activities") or [],
        deductions=payload.get("deductions") or [],
        method=payload.get("method") or STANDARD,
        scope=payload.get("scope"),
        reversible_groups=payload.get("reversible_groups"),
    )

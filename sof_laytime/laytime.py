"""
Laytime Aggregator
Allowed/used time, over/under and demurrage/despatch for one laytime claim,
including reversible pooling across sibling claims.

All figures are in hours; rates are per day.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from .errors import ConfigurationError, PayloadError

logger = logging.getLogger(__name__)

ALL_PORTS = "all_ports"
LOAD_ONLY = "load_only"
DISCHARGE_ONLY = "discharge_only"
REVERSIBLE_SCOPES = (ALL_PORTS, LOAD_ONLY, DISCHARGE_ONLY)
UNASSIGNED = "unassigned"


# --------------------------
# Data structures
# --------------------------
def to_naive_datetime(value: Any) -> Optional[datetime]:
    """Parse a timestamp and keep its wall-clock time, dropping any UTC offset."""
    if value is None or value == "":
        return None
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_localize(None)
    return ts.to_pydatetime()


def safe_float(value: Any, default: Optional[float] = 0.0) -> Optional[float]:
    """Safely convert a value to a float, returning a default on failure."""
    if value is None or value == "":
        return default
    try:
        if isinstance(value, str):
            return float(value.replace(",", ""))
        return float(value)
    except (ValueError, TypeError):
        return default


@dataclass
class PortCall:
    id: str
    port_name: Optional[str] = None
    activity: Optional[str] = None
    allowed_hours: Optional[float] = None
    sequence: int = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PortCall":
        return cls(
            id=str(data.get("id")),
            port_name=data.get("port_name"),
            activity=data.get("activity"),
            allowed_hours=safe_float(data.get("allowed_hours"), None),
            sequence=int(safe_float(data.get("sequence"), 0)),
        )


@dataclass
class LaytimeEvent:
    """A deduction/addition or SOF-derived event counted against laytime."""
    label: str = ""
    from_datetime: Optional[datetime] = None
    to_datetime: Optional[datetime] = None
    rate_of_calculation: float = 100.0
    time_used: Optional[float] = None
    port_call_id: Optional[str] = None

    def hours(self) -> float:
        """Explicit time_used if recorded, otherwise the span weighted by the rate, floored at zero."""
        if self.time_used is not None:
            return max(self.time_used, 0.0)
        if self.from_datetime is None or self.to_datetime is None:
            return 0.0
        span = (self.to_datetime - self.from_datetime).total_seconds() / 3600.0
        return max(span * self.rate_of_calculation / 100.0, 0.0)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LaytimeEvent":
        return cls(
            label=data.get("deduction_name") or data.get("event") or data.get("label") or "",
            from_datetime=to_naive_datetime(data.get("from_datetime")),
            to_datetime=to_naive_datetime(data.get("to_datetime")),
            rate_of_calculation=safe_float(data.get("rate_of_calculation"), 100.0),
            time_used=safe_float(data.get("time_used"), None),
            port_call_id=data.get("port_call_id"),
        )


@dataclass
class LaytimeClaim:
    id: str
    port_call_id: Optional[str] = None
    reversible: bool = False
    reversible_scope: str = ALL_PORTS
    reversible_pool_ids: List[str] = field(default_factory=list)
    laytime_start: Optional[datetime] = None
    laytime_end: Optional[datetime] = None
    cargo_quantity: float = 0.0
    load_discharge_rate: Optional[float] = None
    load_discharge_rate_unit: str = "per_day"
    fixed_rate_duration_hours: Optional[float] = None
    demurrage_rate: float = 0.0
    despatch_rate_value: float = 0.0
    despatch_type: str = "absolute"
    port_calls: List[PortCall] = field(default_factory=list)

    def __post_init__(self):
        if not self.reversible_scope:
            self.reversible_scope = ALL_PORTS
        if self.reversible_scope not in REVERSIBLE_SCOPES:
            raise ConfigurationError(f"Unknown reversible scope: {self.reversible_scope}")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LaytimeClaim":
        if not isinstance(data, dict):
            raise PayloadError("claim must be an object")
        voyage = data.get("voyages") or data.get("voyage") or {}
        quantity = data.get("cargo_quantity", voyage.get("cargo_quantity") if isinstance(voyage, dict) else None)
        return cls(
            id=str(data.get("id") or "claim"),
            port_call_id=data.get("port_call_id"),
            reversible=bool(data.get("reversible")),
            reversible_scope=data.get("reversible_scope") or ALL_PORTS,
            reversible_pool_ids=[str(i) for i in data.get("reversible_pool_ids") or []],
            laytime_start=to_naive_datetime(data.get("laytime_start")),
            laytime_end=to_naive_datetime(data.get("laytime_end")),
            cargo_quantity=safe_float(quantity),
            load_discharge_rate=safe_float(data.get("load_discharge_rate"), None),
            load_discharge_rate_unit=data.get("load_discharge_rate_unit") or "per_day",
            fixed_rate_duration_hours=safe_float(data.get("fixed_rate_duration_hours"), None),
            demurrage_rate=safe_float(data.get("demurrage_rate")),
            despatch_rate_value=safe_float(data.get("despatch_rate_value")),
            despatch_type=data.get("despatch_type") or "absolute",
            port_calls=[PortCall.from_dict(pc) for pc in data.get("port_calls") or []],
        )


@dataclass
class SiblingSummary:
    """Already-computed figures of another claim in the same reversible pool."""
    claim_id: str
    port_call_id: Optional[str] = None
    port_name: Optional[str] = None
    activity: Optional[str] = None
    allowed: Optional[float] = None
    base_hours: Optional[float] = None
    deductions: Optional[float] = None
    used: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SiblingSummary":
        return cls(
            claim_id=str(data.get("claim_id")),
            port_call_id=data.get("port_call_id"),
            port_name=data.get("port_name"),
            activity=data.get("activity"),
            allowed=safe_float(data.get("allowed"), None),
            base_hours=safe_float(data.get("base_hours"), None),
            deductions=safe_float(data.get("deductions"), None),
            used=safe_float(data.get("used"), None),
        )


@dataclass
class PortCallAllocation:
    id: str
    label: str
    activity: str = ""
    allowed: Optional[float] = None
    base: Optional[float] = 0.0
    deductions: Optional[float] = 0.0
    used: Optional[float] = 0.0
    over_under: Optional[float] = None
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "activity": self.activity,
            "allowed": self.allowed,
            "base": self.base,
            "deductions": self.deductions,
            "used": self.used,
            "overUnder": self.over_under,
            "note": self.note,
        }


@dataclass
class LaytimeSnapshot:
    total_allowed: float
    total_used: float
    time_over: float
    once_on_demurrage: bool
    demurrage: float
    despatch: float
    breakdown: List[PortCallAllocation]
    base_span_hours: float
    total_deductions_all: float
    fallback_allowed: float
    calculation_log: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAllowed": self.total_allowed,
            "totalUsed": self.total_used,
            "timeOver": self.time_over,
            "onceOnDemurrage": self.once_on_demurrage,
            "demurrage": self.demurrage,
            "despatch": self.despatch,
            "breakdown": [row.to_dict() for row in self.breakdown],
            "baseSpanHours": self.base_span_hours,
            "totalDeductionsAll": self.total_deductions_all,
            "fallbackAllowed": self.fallback_allowed,
            "calculationLog": list(self.calculation_log),
        }


# --------------------------
# Rules
# --------------------------
def scope_allows(scope: Optional[str], activity: Optional[str]) -> bool:
    if not scope or scope == ALL_PORTS:
        return True
    if scope == LOAD_ONLY:
        return activity == "load"
    if scope == DISCHARGE_ONLY:
        return activity == "discharge"
    raise ConfigurationError(f"Unknown reversible scope: {scope}")


def fallback_allowed_hours(claim: LaytimeClaim) -> float:
    """Allowed hours from cargo quantity and the load/discharge rate."""
    unit = claim.load_discharge_rate_unit
    if unit == "fixed_duration":
        return max(claim.fixed_rate_duration_hours or 0.0, 0.0)
    rate = claim.load_discharge_rate
    if not rate or rate <= 0:
        return 0.0
    qty = claim.cargo_quantity or 0.0
    if unit == "per_hour":
        return qty / rate
    return (qty / rate) * 24


def window_span_hours(claim: LaytimeClaim) -> float:
    if claim.laytime_start and claim.laytime_end and claim.laytime_end > claim.laytime_start:
        return (claim.laytime_end - claim.laytime_start).total_seconds() / 3600.0
    return 0.0


def despatch_rate_per_day(claim: LaytimeClaim) -> float:
    if claim.despatch_type == "percent":
        return claim.demurrage_rate * (claim.despatch_rate_value / 100.0)
    return claim.despatch_rate_value


def _event_in_scope(claim: LaytimeClaim, event: LaytimeEvent) -> bool:
    if not claim.reversible:
        if claim.port_call_id:
            return not event.port_call_id or event.port_call_id == claim.port_call_id
        return True
    port = next((pc for pc in claim.port_calls if pc.id == event.port_call_id), None)
    if port is None or not port.activity:
        return True
    return scope_allows(claim.reversible_scope, port.activity)


def _sibling_activity(claim: LaytimeClaim, sibling: SiblingSummary) -> Optional[str]:
    if sibling.activity:
        return sibling.activity
    port = next((pc for pc in claim.port_calls if pc.id == sibling.port_call_id), None)
    return port.activity if port else None


def pooled_siblings(claim: LaytimeClaim, siblings: List[SiblingSummary]) -> List[SiblingSummary]:
    """
    Siblings that contribute to a reversible claim's pool.

    A sibling's activity is its own, or that of the claim port call it refers to.
    Siblings with no known activity only qualify for an all-ports scope. When
    pool ids are configured, siblings inside the pool take precedence.
    """
    if not claim.reversible:
        return []
    scoped = []
    for sibling in siblings:
        activity = _sibling_activity(claim, sibling)
        if activity is None:
            if claim.reversible_scope == ALL_PORTS:
                scoped.append(sibling)
        elif scope_allows(claim.reversible_scope, activity):
            scoped.append(sibling)
    pool_ids = {claim.id, *claim.reversible_pool_ids}
    selection = [s for s in scoped if s.claim_id in pool_ids]
    return selection or scoped


def _port_breakdown(
    claim: LaytimeClaim,
    buckets: Dict[str, float],
    event_hours: Dict[str, float],
    base_span: float,
) -> List[PortCallAllocation]:
    rows = []
    for pc in claim.port_calls:
        bucket = buckets.get(pc.id, 0.0)
        if base_span > 0:
            used = max(base_span - bucket, 0.0)
        else:
            used = max(event_hours.get(pc.id, 0.0), 0.0)
        rows.append(
            PortCallAllocation(
                id=pc.id,
                label=pc.port_name or "Port",
                activity=pc.activity or "",
                allowed=pc.allowed_hours,
                base=base_span,
                deductions=bucket,
                used=used,
                over_under=pc.allowed_hours - used if pc.allowed_hours is not None else None,
            )
        )
    return rows


def _pooled_breakdown(
    claim: LaytimeClaim, pool: List[SiblingSummary], buckets: Dict[str, float]
) -> List[PortCallAllocation]:
    pooled_port_ids = {s.port_call_id for s in pool if s.port_call_id}
    ports = [
        pc for pc in claim.port_calls
        if scope_allows(claim.reversible_scope, pc.activity) or not pc.activity
    ]
    if pooled_port_ids:
        ports = [pc for pc in ports if pc.id in pooled_port_ids]
    ports.sort(key=lambda pc: pc.sequence or 0)

    rows = []
    for pc in ports:
        sibling = (
            next((s for s in pool if s.claim_id == claim.id and s.port_call_id == pc.id), None)
            or next((s for s in pool if s.port_call_id == pc.id), None)
            or next(
                (s for s in pool if not s.port_call_id and (not s.activity or s.activity == pc.activity)),
                None,
            )
        )
        if sibling is None:
            rows.append(
                PortCallAllocation(
                    id=pc.id,
                    label=pc.port_name or "Port",
                    activity=pc.activity or "",
                    note="Claim not created yet",
                )
            )
            continue
        over_under = None
        if sibling.allowed is not None:
            over_under = sibling.allowed - (sibling.used or 0.0)
        rows.append(
            PortCallAllocation(
                id=pc.id,
                label=pc.port_name or sibling.port_name or "Port",
                activity=pc.activity or "",
                allowed=sibling.allowed,
                base=sibling.base_hours,
                deductions=sibling.deductions,
                used=sibling.used,
                over_under=over_under,
            )
        )

    unassigned = buckets.get(UNASSIGNED)
    if unassigned:
        rows.append(
            PortCallAllocation(
                id=UNASSIGNED,
                label="Unassigned events",
                deductions=unassigned,
                used=unassigned,
            )
        )
    return rows


# --------------------------
# Snapshot
# --------------------------
def compute_snapshot(
    claim: LaytimeClaim,
    events: List[LaytimeEvent],
    siblings: Optional[List[SiblingSummary]] = None,
    manual_deductions: Optional[List[LaytimeEvent]] = None,
    manual_additions: Optional[List[LaytimeEvent]] = None,
) -> LaytimeSnapshot:
    """
    Compute the laytime statement snapshot of a single claim.

    With a laytime window, used time is the window span less net deductions,
    where net deductions are manual deductions less manual additions. Without
    a window, used time is the summed duration of the scoped events.

    Once on demurrage: when the window span exceeds allowed time, used time is
    the full span regardless of credits.

    For a reversible claim with qualifying sibling data, allowed and used are
    the sibling sums and take precedence over the window figures.

    Args:
        claim: Claim configuration
        events: Laytime spans, each counted by hours() when there is no window
        siblings: Summaries of other claims in the reversible pool
        manual_deductions: Time not counting against laytime
        manual_additions: Time credited back

    Returns:
        LaytimeSnapshot with a per-port breakdown and a calculation log
    """
    log: List[str] = []
    siblings = siblings or []

    scoped_events = [ev for ev in events if _event_in_scope(claim, ev)]
    scoped_deductions = [ev for ev in manual_deductions or [] if _event_in_scope(claim, ev)]
    scoped_additions = [ev for ev in manual_additions or [] if _event_in_scope(claim, ev)]

    event_hours: Dict[str, float] = {}
    for ev in scoped_events:
        key = ev.port_call_id or UNASSIGNED
        event_hours[key] = event_hours.get(key, 0.0) + ev.hours()

    buckets: Dict[str, float] = {}
    for ev in scoped_deductions:
        key = ev.port_call_id or UNASSIGNED
        buckets[key] = buckets.get(key, 0.0) + ev.hours()
    for ev in scoped_additions:
        key = ev.port_call_id or UNASSIGNED
        buckets[key] = buckets.get(key, 0.0) - ev.hours()
    total_deductions = max(sum(buckets.values()), 0.0)
    log.append(
        f"Deductions: {len(scoped_deductions)} manual deductions, "
        f"{len(scoped_additions)} additions = {total_deductions:.4f} h net"
    )

    base_span = window_span_hours(claim)
    if base_span > 0:
        log.append(f"Laytime window: {claim.laytime_start} to {claim.laytime_end} = {base_span:.4f} h")

    fallback_allowed = fallback_allowed_hours(claim)
    pool = pooled_siblings(claim, siblings)
    primary = next((pc for pc in claim.port_calls if pc.id == claim.port_call_id), None)
    if primary is None and not claim.port_call_id and claim.port_calls:
        primary = claim.port_calls[0]

    if pool:
        total_allowed = max(sum(s.allowed or 0.0 for s in pool), 0.0)
        log.append(f"Laytime Allowed: pooled from {len(pool)} claims = {total_allowed:.4f} h")
    elif not claim.reversible and primary is not None and primary.allowed_hours is not None:
        total_allowed = primary.allowed_hours
        log.append(f"Laytime Allowed: port {primary.port_name or primary.id} = {total_allowed:.4f} h")
    else:
        total_allowed = fallback_allowed
        log.append(
            f"Laytime Allowed: {claim.cargo_quantity} / {claim.load_discharge_rate} "
            f"({claim.load_discharge_rate_unit}) = {total_allowed:.4f} h"
        )

    if base_span > 0:
        used_before_rule = max(base_span - total_deductions, 0.0)
    else:
        used_before_rule = max(sum(event_hours.values()), 0.0)
        log.append(f"Events: {len(scoped_events)} spans = {used_before_rule:.4f} h")
    once_on_demurrage = False
    if pool:
        total_used = max(sum(s.used or 0.0 for s in pool), 0.0)
        log.append(f"Time Used: pooled from {len(pool)} claims = {total_used:.4f} h")
    elif base_span > 0 and total_allowed >= 0 and base_span > total_allowed:
        once_on_demurrage = True
        total_used = base_span
        log.append(f"Once on demurrage: window {base_span:.4f} h exceeds allowed, used = full window")
    else:
        total_used = used_before_rule
        log.append(f"Time Used: {total_used:.4f} h")

    time_over = total_allowed - total_used
    despatch_rate = despatch_rate_per_day(claim)
    demurrage = -time_over * (claim.demurrage_rate / 24.0) if time_over < 0 else 0.0
    despatch = time_over * (despatch_rate / 24.0) if time_over > 0 else 0.0

    if demurrage:
        log.append(f"Result: Demurrage. Hours over: {-time_over:.4f}. Amount: ${demurrage:,.2f}")
    elif despatch:
        log.append(f"Result: Despatch. Hours saved: {time_over:.4f}. Amount: ${despatch:,.2f}")
    else:
        log.append("Result: Vessel completed exactly on time.")

    if claim.reversible:
        breakdown = _pooled_breakdown(claim, pool, buckets)
    else:
        breakdown = _port_breakdown(claim, buckets, event_hours, base_span)

    logger.debug("Claim %s: allowed %.4f h, used %.4f h", claim.id, total_allowed, total_used)
    return LaytimeSnapshot(
        total_allowed=total_allowed,
        total_used=total_used,
        time_over=time_over,
        once_on_demurrage=once_on_demurrage,
        demurrage=demurrage,
        despatch=despatch,
        breakdown=breakdown,
        base_span_hours=base_span,
        total_deductions_all=total_deductions,
        fallback_allowed=fallback_allowed,
        calculation_log=log,
    )


def snapshot_from_payload(payload: Dict[str, Any]) -> LaytimeSnapshot:
    """Build inputs from a JSON body and compute the snapshot."""
    if not isinstance(payload, dict) or not isinstance(payload.get("claim"), dict):
        raise PayloadError("'claim' object is required")
    claim = LaytimeClaim.from_dict(payload["claim"])

    def _events(key: str) -> List[LaytimeEvent]:
        value = payload.get(key) or []
        if not isinstance(value, list):
            raise PayloadError(f"'{key}' must be a list")
        return [LaytimeEvent.from_dict(item) for item in value if isinstance(item, dict)]

    siblings = payload.get("siblings") or []
    if not isinstance(siblings, list):
        raise PayloadError("'siblings' must be a list")
    return compute_snapshot(
        claim,
        _events("events"),
        siblings=[SiblingSummary.from_dict(s) for s in siblings if isinstance(s, dict)],
        manual_deductions=_events("manual_deductions"),
        manual_additions=_events("manual_additions"),
    )

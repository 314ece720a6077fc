"""
Data structures for the SOF normalization pipeline.

All pipeline values are frozen dataclasses: a document's line items and the
events derived from them are produced once per call and never mutated.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import date, datetime, time
from typing import Any, Dict, List, Optional, Tuple, Union

Timestamp = Union[datetime, time, None]

INSTANT = "instant"
DURATION = "duration"


def _iso(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class RawLineItem:
    """One OCR line, already reduced from the service's alias union."""
    text: str
    confidence: Optional[float] = None
    page: Optional[int] = None
    line: Optional[int] = None
    start: Timestamp = None
    end: Timestamp = None
    port_call_ref: Optional[str] = None


@dataclass(frozen=True)
class NormalizedEvent:
    label: str
    from_datetime: Optional[datetime] = None
    to_datetime: Optional[datetime] = None
    event_type: str = INSTANT
    canonical_event: Optional[str] = None
    canonical_confidence: Optional[float] = None
    confidence: Optional[float] = None
    warnings: Tuple[str, ...] = ()
    port_call_ref: Optional[str] = None
    page: Optional[int] = None
    line: Optional[int] = None
    raw_label: Optional[str] = None

    def with_warnings(self, *extra: str) -> "NormalizedEvent":
        merged = list(self.warnings)
        for warning in extra:
            if warning not in merged:
                merged.append(warning)
        return replace(self, warnings=tuple(merged))

    @property
    def duration_hours(self) -> float:
        if self.from_datetime is None or self.to_datetime is None:
            return 0.0
        return max((self.to_datetime - self.from_datetime).total_seconds() / 3600.0, 0.0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": self.label,
            "from_datetime": _iso(self.from_datetime),
            "to_datetime": _iso(self.to_datetime),
            "event_type": self.event_type,
            "canonical_event": self.canonical_event,
            "canonical_confidence": self.canonical_confidence,
            "confidence": self.confidence,
            "warnings": list(self.warnings),
            "port_call_ref": self.port_call_ref,
            "page": self.page,
            "line": self.line,
            "raw_label": self.raw_label,
        }


@dataclass(frozen=True)
class SofSummary:
    """Header fields of one SOF. Each field is write-once: the first value wins."""
    port_name: Optional[str] = None
    terminal: Optional[str] = None
    vessel_name: Optional[str] = None
    imo: Optional[str] = None
    cargo_name: Optional[str] = None
    cargo_quantity: Optional[str] = None
    laycan_start: Optional[date] = None
    laycan_end: Optional[date] = None
    operation_type: Optional[str] = None

    def fill(self, name: str, candidate: Any) -> "SofSummary":
        """Return a summary with ``name`` set to ``candidate`` unless already set."""
        if candidate is None or candidate == "" or getattr(self, name) is not None:
            return self
        return replace(self, **{name: candidate})

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: _iso(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SofSummary":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in (data or {}).items():
            if key not in known or value is None:
                continue
            if key in ("laycan_start", "laycan_end"):
                if isinstance(value, str):
                    try:
                        value = date.fromisoformat(value[:10])
                    except ValueError:
                        continue
                elif not isinstance(value, date):
                    continue
            else:
                value = str(value).strip() or None
            values[key] = value
        return cls(**values)


@dataclass(frozen=True)
class FilterResult:
    accepted: List[NormalizedEvent]
    filtered_out: List[NormalizedEvent]
    confidence_floor: float


@dataclass
class NormalizeResult:
    events: List[NormalizedEvent]
    filtered_out: List[NormalizedEvent]
    summary: SofSummary
    warnings: List[str] = field(default_factory=list)
    confidence_floor: float = 0.35
    unmapped_labels: List[Tuple[str, int]] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "events": [ev.to_dict() for ev in self.events],
            "filtered_out": [ev.to_dict() for ev in self.filtered_out],
            "summary": self.summary.to_dict(),
            "warnings": list(self.warnings),
            "unmapped_labels": [{"label": label, "count": count} for label, count in self.unmapped_labels],
            "meta": {
                "filteredOutCount": len(self.filtered_out),
                "confidenceFloor": self.confidence_floor,
            },
        }
        if self.error:
            payload["error"] = self.error
        return payload

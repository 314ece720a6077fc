"""
Header Extractor Module
Harvests vessel/port/terminal/cargo/IMO/laycan fields from SOF lines.

The summary is an immutable SofSummary; every setter goes through
SofSummary.fill so a field, once set, keeps its first value.
"""

import logging
import re
from dataclasses import replace
from typing import Iterable, Optional, Tuple

from ..models import SofSummary
from .datetime_lexer import parse_date, parse_date_range, parse_month_span

logger = logging.getLogger(__name__)

QUANTITY_RE = re.compile(
    r"(?<![\d.,])(\d{1,3}(?:,\d{3})+(?:\.\d+)?|\d+(?:\.\d+)?)\s*"
    r"(mt|m[/·.]t\.?|tons?|tonnes?|t)\b",
    re.IGNORECASE,
)
QUANTITY_HINT_RE = re.compile(r"quantity|final|loaded|discharged|figure|\bmt\b", re.IGNORECASE)
CARGO_QTY_HINT_RE = re.compile(r"cargo|quantity|tonnage|loaded|discharged", re.IGNORECASE)

PORT_RE = re.compile(
    r"^(?:loading port|load port|discharge port|discharging port|port)\s*[:\-]\s*(.+)$", re.IGNORECASE
)
PORT_OF_RE = re.compile(r"\bport\s+of\s+([A-Za-z][A-Za-z .'-]*[A-Za-z])", re.IGNORECASE)
TERMINAL_RE = re.compile(
    r"\b(?:terminal|berth|jetty|wharf|quay)(?:\s+(?:name|no\.?))?\s*[:\-]\s*([A-Za-z0-9 .#/-]+)", re.IGNORECASE
)
TERMINAL_WORD_RE = re.compile(r"\b(?:berth|terminal|jetty|wharf)\b", re.IGNORECASE)
VESSEL_RE = re.compile(r"^vessel(?:\s+name)?\s*[:\-]\s*([A-Za-z0-9 ._'-]+)", re.IGNORECASE)
MV_RE = re.compile(r"\b(?:m/v|m\.v\.|mv)\s+([A-Za-z0-9 _'-]+)", re.IGNORECASE)
IMO_RE = re.compile(r"\bimo\s*(?:no\.?|number)?\s*[:\s]\s*(\d{7})(?!\d)", re.IGNORECASE)
BARE_IMO_RE = re.compile(r"(?<![\d.,])(\d{7})(?![\d.,])")
CARGO_RE = re.compile(r"^cargo(?:\s+name)?\s*[:\-]\s*(.+)$", re.IGNORECASE)
LAYCAN_RANGE_RE = re.compile(
    r"laycan\s*[:\-]?\s*([0-9A-Za-z/\\.-]+?)\s*(?:to|–|—|→|-)\s*([0-9A-Za-z/\\.-]+)", re.IGNORECASE
)
COMMODITY_RE = re.compile(r"\b(?:grain|wheat|coal|iron|corn|soya|soy|sugar|maize|barley|urea|clinker)\b", re.IGNORECASE)
VESSEL_HINT_RE = re.compile(r"\bmv\b|m/v|vessel", re.IGNORECASE)

# Lines that only introduce the value on the following line.
PENDING_KEY_RULES = [
    (re.compile(r"^vessel(?:\s+name)?\s*:?$", re.IGNORECASE), "vessel_name"),
    (re.compile(r"^(?:loading|load|discharge|discharging)?\s*port\s*:?$", re.IGNORECASE), "port_name"),
    (re.compile(r"^(?:terminal|berth)\s*:?$", re.IGNORECASE), "terminal"),
    (re.compile(r"^cargo(?:\s+name)?\s*:?$", re.IGNORECASE), "cargo_name"),
    (re.compile(r"^(?:cargo\s+)?quantity(?:\s+(?:loaded|discharged))?\s*:?$", re.IGNORECASE), "cargo_quantity"),
    (re.compile(r"^imo(?:\s+(?:no\.?|number))?\s*:?$", re.IGNORECASE), "imo"),
    (re.compile(r"^laycan\s*:?$", re.IGNORECASE), "laycan"),
]

# Field-label lines feed the header and are never emitted as events.
FIELD_ALWAYS_RE = re.compile(
    r"^(?:vessel\s+name|flag|imo|call\s+sign|deadweight|dwt|shipper|consignee|charterers?"
    r"|port\s+agent|laycan|operation\s+date)\b",
    re.IGNORECASE,
)
FIELD_COLON_RE = re.compile(
    r"^(?:vessel|cargo(?:\s+name)?|(?:loading|load|discharge|discharging)\s+port|port"
    r"|terminal|berth|(?:cargo\s+)?quantity(?:\s+(?:loaded|discharged))?)\s*(?::|$)",
    re.IGNORECASE,
)


def parse_quantity(text: Optional[str]) -> Optional[Tuple[float, str]]:
    """
    Find a cargo quantity with a unit suffix, e.g. "25,000 MT" or "3200.5 tonnes".

    Only thousands commas are removed before conversion.
    """
    if not text:
        return None
    match = QUANTITY_RE.search(text)
    if not match:
        return None
    try:
        qty = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    return qty, match.group(2).lower()


def format_quantity(qty: float, unit: str) -> str:
    number = str(int(qty)) if qty.is_integer() else str(qty)
    return f"{number} {unit}".strip()


def best_quantity(lines: Iterable[str]) -> Optional[str]:
    """Largest quantity on any line mentioning quantity/final/loaded/discharged/figure."""
    best = None
    for line in lines:
        if not line or not QUANTITY_HINT_RE.search(line):
            continue
        parsed = parse_quantity(line)
        if parsed and (best is None or parsed[0] > best[0]):
            best = parsed
    return format_quantity(*best) if best else None


def clean_vessel_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return None
    name = re.sub(r"\s+", " ", name).strip(" -:")
    name = re.sub(r"^(?:m/v|m\.v\.|mv)\s+", "", name, flags=re.IGNORECASE)
    if " - " in name:
        head = name.split(" - ")[0].strip()
        if len(head) >= 3:
            name = head
    if not name or name.lower() == "name":
        return None
    return name


def clean_terminal(value: Optional[str]) -> Optional[str]:
    """Reject single-token or purely numeric terminal captures."""
    if not value:
        return None
    value = re.sub(r"\s+", " ", value).strip(" -:")
    if len(value.split(" ")) <= 1 or value.replace(" ", "").isdigit():
        return None
    return value


def is_field_line(label: str) -> bool:
    return bool(FIELD_ALWAYS_RE.match(label) or FIELD_COLON_RE.match(label))


def pending_key_for(label: str, summary: SofSummary) -> Optional[str]:
    """Return the summary key a label-only line introduces, if that field is still empty."""
    for pattern, key in PENDING_KEY_RULES:
        if not pattern.match(label):
            continue
        if key == "laycan":
            return key if summary.laycan_start is None and summary.laycan_end is None else None
        return key if getattr(summary, key) is None else None
    return None


def _fill_laycan(summary: SofSummary, text: str) -> SofSummary:
    start, end = parse_date_range(text)
    summary = summary.fill("laycan_start", start).fill("laycan_end", end)
    span_start, span_end = parse_month_span(text)
    return summary.fill("laycan_start", span_start).fill("laycan_end", span_end)


def capture_pending(summary: SofSummary, key: str, label: str) -> SofSummary:
    """Store ``label`` as the value of the field announced on the previous line."""
    if key == "laycan":
        return _fill_laycan(summary, label)
    if key == "cargo_quantity":
        parsed = parse_quantity(label)
        return summary.fill(key, format_quantity(*parsed)) if parsed else summary
    if key == "imo":
        match = BARE_IMO_RE.search(label)
        return summary.fill(key, match.group(1)) if match else summary
    if key == "vessel_name":
        return summary.fill(key, clean_vessel_name(label))
    if key == "terminal":
        return summary.fill(key, clean_terminal(label))
    value = label.strip()
    if key == "cargo_name" and value.lower() == "name":
        return summary
    return summary.fill(key, value or None)


def harvest_explicit(summary: SofSummary, label: str) -> SofSummary:
    """Apply the ``field: value`` patterns. These run on every line."""
    lower = label.lower()

    match = PORT_RE.match(label)
    if match:
        summary = summary.fill("port_name", match.group(1).strip())
    match = PORT_OF_RE.search(label)
    if match:
        summary = summary.fill("port_name", match.group(1).strip())

    match = TERMINAL_RE.search(label)
    if match:
        summary = summary.fill("terminal", clean_terminal(match.group(1)))

    match = VESSEL_RE.match(label)
    if match:
        summary = summary.fill("vessel_name", clean_vessel_name(match.group(1)))

    match = IMO_RE.search(label)
    if match:
        summary = summary.fill("imo", match.group(1))

    match = CARGO_RE.match(label)
    if match:
        name = QUANTITY_RE.sub("", match.group(1))
        name = re.sub(r"\s+", " ", name).strip(" ,;-")
        summary = summary.fill("cargo_name", name or None)

    if summary.cargo_quantity is None and CARGO_QTY_HINT_RE.search(label):
        parsed = parse_quantity(label)
        if parsed:
            summary = summary.fill("cargo_quantity", format_quantity(*parsed))

    if "laycan" in lower:
        match = LAYCAN_RANGE_RE.search(label)
        if match:
            summary = summary.fill("laycan_start", parse_date(match.group(1)))
            summary = summary.fill("laycan_end", parse_date(match.group(2)))
        span_start, span_end = parse_month_span(label)
        summary = summary.fill("laycan_start", span_start).fill("laycan_end", span_end)

    if lower.startswith("operation date"):
        start, end = parse_date_range(label.split(":", 1)[-1])
        summary = summary.fill("laycan_start", start).fill("laycan_end", end)

    if summary.operation_type is None:
        if re.search(r"\bdisch", lower):
            summary = summary.fill("operation_type", "discharge")
        elif re.search(r"\bload", lower):
            summary = summary.fill("operation_type", "load")
    return summary


def harvest_heuristic(summary: SofSummary, label: str, has_datetime: bool) -> SofSummary:
    """Looser guesses that only apply to the header block, before the timeline starts."""
    if summary.imo is None and "imo" not in label.lower():
        match = BARE_IMO_RE.search(label)
        if match and not QUANTITY_RE.search(label):
            summary = summary.fill("imo", match.group(1))

    if summary.vessel_name is None:
        match = MV_RE.search(label)
        if match:
            summary = summary.fill("vessel_name", clean_vessel_name(match.group(1)))

    if (
        summary.terminal is None
        and TERMINAL_WORD_RE.search(label)
        and not TERMINAL_RE.search(label)
        and len(label) < 120
    ):
        summary = summary.fill("terminal", clean_terminal(label))

    if (
        summary.cargo_name is None
        and not has_datetime
        and not is_field_line(label)
        and not TERMINAL_WORD_RE.search(label)
        and not VESSEL_HINT_RE.search(label)
        and COMMODITY_RE.search(label)
    ):
        summary = summary.fill("cargo_name", label.strip())

    if summary.laycan_start is None or summary.laycan_end is None:
        summary = _fill_laycan(summary, label)
    return summary


def harvest_line(summary: SofSummary, label: str, timeline_started: bool, has_datetime: bool) -> SofSummary:
    summary = harvest_explicit(summary, label)
    if not timeline_started:
        summary = harvest_heuristic(summary, label, has_datetime)
    return summary


def finalize_summary(summary: SofSummary, lines: Iterable[str]) -> SofSummary:
    """Fill a missing quantity from the document body and drop a trailing "cargo ..." from the vessel name."""
    if summary.cargo_quantity is None:
        summary = summary.fill("cargo_quantity", best_quantity(lines))
    if summary.vessel_name:
        trimmed = re.sub(r"cargo.*$", "", summary.vessel_name, flags=re.IGNORECASE).strip(" -")
        if trimmed and trimmed != summary.vessel_name:
            summary = replace(summary, vessel_name=trimmed)
    if summary.terminal and clean_terminal(summary.terminal) is None:
        summary = replace(summary, terminal=None)
    return summary

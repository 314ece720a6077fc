"""
Event Normalizer Module
Turns OCR line items into timestamped SOF events and a header summary.

The pass is a fold over the (merged) line sequence. Date context, a pending
timestamp and the header accumulator live in an explicit FoldState that is
replaced, not mutated, at each step.
"""

import logging
import re
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from typing import Callable, List, Optional, Sequence, Tuple

from ..errors import NO_DATE_CONTEXT, START_AFTER_END
from ..models import DURATION, INSTANT, NormalizedEvent, RawLineItem, SofSummary, Timestamp
from .datetime_lexer import (
    attach_end_date,
    is_pure_datetime,
    parse_date,
    parse_time,
    parse_time_range,
    strip_datetime_prefix,
)
from .header_extractor import capture_pending, harvest_line, is_field_line, pending_key_for

logger = logging.getLogger(__name__)

# Column headers: headings only when they are the whole line.
COLUMN_HEADINGS = {
    "phase", "start", "end", "notes", "remarks", "operations", "date", "time", "event",
    "description", "time/date", "time / date", "date/time", "date / time", "event / description",
    "event/description", "signatures", "delays", "weather delay", "weather delays",
    "mechanical delays", "remarks & delays",
}
# Section titles: matched anywhere in the line.
SECTION_TITLES = (
    "statement of facts",
    "arrival / departure summary",
    "arrival/departure summary",
    "cargo details",
    "detailed operations log",
    "operational notes",
)
SIGNATURE_MARKERS = ("signature", "master:", "agent:", "terminal representative")
CARGO_BOILERPLATE_CONTAINS = ("cargo condition", "trimmed, inspected, secured")
CARGO_BOILERPLATE_PREFIXES = ("intended loading", "final loaded", "cargo description", "dwt:")
QUANTITY_LINE_RE = re.compile(r"^\d{1,3}(?:[.,]\d{3})*(?:\.\d+)?\s*(?:mt|m/t|tons?|tonnes?)\b", re.IGNORECASE)
MONTH_ONLY_RE = re.compile(r"^(jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\.?\d{0,4}$", re.IGNORECASE)

DURATION_KEYWORDS = (
    "delay", "weather", "rain", "suspension", "stoppage", "disruption",
    "shift", "survey", "inspection", "sampling",
)

NOISE_RULES: List[Tuple[Callable[[str], bool], str]] = [
    (lambda lower: lower.strip(" :") in COLUMN_HEADINGS, "column heading"),
    (lambda lower: any(t in lower for t in SECTION_TITLES), "section heading"),
    (lambda lower: any(m in lower for m in SIGNATURE_MARKERS), "signature block"),
    (lambda lower: any(s in lower for s in CARGO_BOILERPLATE_CONTAINS), "cargo boilerplate"),
    (lambda lower: lower.startswith(CARGO_BOILERPLATE_PREFIXES), "cargo boilerplate"),
    (lambda lower: bool(QUANTITY_LINE_RE.match(lower)), "quantity line"),
]


def noise_reason(label: str) -> Optional[str]:
    """Return why a line is a heading or noise, or None for a content line."""
    lower = label.lower().strip()
    for predicate, reason in NOISE_RULES:
        if predicate(lower):
            return reason
    return None


def _clean(text: Optional[str]) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def _min_confidence(rows: Sequence[RawLineItem]) -> Optional[float]:
    scores = [r.confidence for r in rows if r.confidence is not None]
    return min(scores) if scores else None


def _is_description(text: str) -> bool:
    return (
        bool(re.search(r"[A-Za-z]", text))
        and parse_date(text) is None
        and parse_time(text) is None
        and noise_reason(text) is None
        and not is_field_line(text)
    )


def _pure_datetime(text: str) -> Optional[datetime]:
    d, t = parse_date(text), parse_time(text)
    if d and t and is_pure_datetime(text):
        return datetime.combine(d, t)
    return None


def _merged(first: RawLineItem, rows: Sequence[RawLineItem], **changes) -> RawLineItem:
    port_ref = next((r.port_call_ref for r in rows if r.port_call_ref), None)
    return replace(first, confidence=_min_confidence(rows), port_call_ref=port_ref, **changes)


def merge_table_rows(items: Sequence[RawLineItem]) -> List[RawLineItem]:
    """
    Stitch tabular records spread over two or three physical lines.

    Three layouts are recognised:
        (a) label line, then a date-time line (and optionally an end date-time line)
        (b) date-time line, then a description line
        (c) date line, then a time line, then a description line

    Returns:
        Rows with one logical record each; merged rows keep the lowest confidence
    """
    merged: List[RawLineItem] = []
    idx, total = 0, len(items)
    while idx < total:
        cur = items[idx]
        text = _clean(cur.text)
        nxt = items[idx + 1] if idx + 1 < total else None
        nxt_text = _clean(nxt.text) if nxt else ""

        if nxt is not None and cur.start is None and _is_description(text):
            start = _pure_datetime(nxt_text)
            if start is not None:
                rows = [cur, nxt]
                end = None
                if idx + 2 < total:
                    end = _pure_datetime(_clean(items[idx + 2].text))
                    if end is not None:
                        rows.append(items[idx + 2])
                merged.append(_merged(cur, rows, text=text, start=start, end=cur.end or end))
                idx += len(rows)
                continue

        if nxt is not None and nxt.start is None and _is_description(nxt_text):
            start = _pure_datetime(text)
            if start is not None:
                merged.append(_merged(nxt, [cur, nxt], text=nxt_text, start=start, page=cur.page, line=cur.line))
                idx += 2
                continue

        if idx + 2 < total and is_pure_datetime(text):
            day = parse_date(text)
            clock = parse_time(nxt_text)
            desc = items[idx + 2]
            desc_text = _clean(desc.text)
            if (
                day is not None
                and clock is not None
                and parse_time(text) is None
                and parse_date(nxt_text) is None
                and is_pure_datetime(nxt_text)
                and _is_description(desc_text)
            ):
                rows = [cur, nxt, desc]
                start = datetime.combine(day, clock)
                merged.append(_merged(desc, rows, text=desc_text, start=start, page=cur.page, line=cur.line))
                idx += 3
                continue

        merged.append(cur)
        idx += 1
    return merged


@dataclass(frozen=True)
class FoldState:
    current_date: Optional[date] = None
    pending_datetime: Optional[datetime] = None
    pending_warning: Optional[str] = None
    timeline_started: bool = False
    pending_key: Optional[str] = None
    summary: SofSummary = field(default_factory=SofSummary)
    events: Tuple[NormalizedEvent, ...] = ()


def _scan_back_for_date(rows: Sequence[RawLineItem], idx: int) -> Optional[date]:
    for row in reversed(rows[:idx]):
        found = parse_date(row.text)
        if found is not None:
            return found
        if isinstance(row.start, datetime):
            return row.start.date()
    return None


def _unusable_label(label: str) -> bool:
    if len(label) < 3 or not re.search(r"[A-Za-z]", label):
        return True
    words = label.split()
    return len(words) == 1 and bool(MONTH_ONLY_RE.match(words[0]))


def _resolve_start(
    start: Timestamp, context: Optional[date]
) -> Tuple[Optional[datetime], Optional[str]]:
    if isinstance(start, datetime):
        return start, None
    if isinstance(start, time):
        if context is None:
            return None, NO_DATE_CONTEXT
        return datetime.combine(context, start), None
    return None, None


def _step(state: FoldState, rows: Sequence[RawLineItem], idx: int) -> FoldState:
    row = rows[idx]
    text = _clean(row.text)
    if not text or text == ":":
        return state

    day = parse_date(text)
    clock = parse_time(text)
    summary = harvest_line(state.summary, text, state.timeline_started, bool(day or clock))
    state = replace(state, summary=summary)

    heading = noise_reason(text)
    field_line = is_field_line(text)
    if state.pending_key:
        key = state.pending_key
        state = replace(state, pending_key=None)
        if not field_line and heading in (None, "quantity line"):
            return replace(state, summary=capture_pending(state.summary, key, text))

    key = pending_key_for(text, state.summary)
    if key:
        return replace(state, pending_key=key)
    if field_line or heading:
        logger.debug("Skipping %s line %s", heading or "field", row.line)
        return state

    explicit = row.start is not None
    carried = state.pending_datetime is not None or state.pending_warning is not None
    if not state.timeline_started and not day and not clock and not explicit and not carried:
        return state

    if day and not clock and not explicit:
        return replace(state, current_date=day, pending_datetime=None, pending_warning=None)

    warnings: List[str] = []
    range_start, range_end = parse_time_range(text)
    start: Timestamp = row.start
    end: Timestamp = row.end if row.end is not None else range_end
    current_date = state.current_date
    timeline_started = state.timeline_started

    if start is None and day and clock:
        current_date = day
        start = datetime.combine(day, range_start or clock)
    elif start is None and clock:
        context = current_date or _scan_back_for_date(rows, idx)
        if context is not None:
            start = datetime.combine(context, range_start or clock)
        else:
            start = range_start or clock

    start_dt, warning = _resolve_start(start, current_date or _scan_back_for_date(rows, idx))
    if warning:
        warnings.append(warning)
    if start_dt is not None:
        current_date = start_dt.date()
        timeline_started = True

    label = strip_datetime_prefix(text)
    if _unusable_label(label) or is_pure_datetime(text):
        return replace(
            state,
            current_date=current_date,
            timeline_started=timeline_started,
            pending_datetime=start_dt,
            pending_warning=warning,
        )

    if start_dt is None and state.pending_datetime is not None:
        start_dt = state.pending_datetime
    elif start_dt is None and state.pending_warning:
        warnings.append(state.pending_warning)

    end_dt = attach_end_date(start_dt, end) if end is not None else None
    if end_dt is None and end is None:
        end_dt = start_dt
    if start_dt and end_dt and end_dt < start_dt:
        warnings.append(START_AFTER_END)

    has_interval = start_dt is not None and end_dt is not None and start_dt != end_dt
    lowered = label.lower()
    keyword_duration = any(kw in lowered for kw in DURATION_KEYWORDS)

    event = NormalizedEvent(
        label=label,
        from_datetime=start_dt,
        to_datetime=end_dt,
        event_type=DURATION if has_interval or keyword_duration else INSTANT,
        confidence=row.confidence,
        port_call_ref=row.port_call_ref,
        page=row.page,
        line=row.line,
        raw_label=text,
    ).with_warnings(*warnings)

    return replace(
        state,
        current_date=current_date,
        timeline_started=timeline_started,
        pending_datetime=None,
        pending_warning=None,
        events=state.events + (event,),
    )


def _fallback_events(rows: Sequence[RawLineItem]) -> List[NormalizedEvent]:
    """Emit rows that carry explicit timestamps when the main pass produced nothing."""
    events = []
    for row in rows:
        label = _clean(row.text)
        start = row.start if isinstance(row.start, datetime) else None
        end = row.end if isinstance(row.end, datetime) else start
        if not label or start is None or end is None:
            continue
        events.append(
            NormalizedEvent(
                label=label,
                from_datetime=start,
                to_datetime=end,
                event_type=DURATION if start != end else INSTANT,
                confidence=row.confidence,
                port_call_ref=row.port_call_ref,
                page=row.page,
                line=row.line,
                raw_label=label,
            )
        )
    return events


def normalize_sof_events(items: Sequence[RawLineItem]) -> Tuple[List[NormalizedEvent], SofSummary]:
    """
    Normalize one document's line items.

    Args:
        items: Ordered RawLineItems of a single SOF

    Returns:
        Tuple of (events, summary). Events carry no canonical tag yet.
    """
    rows = merge_table_rows(items)
    state = FoldState()
    for idx in range(len(rows)):
        state = _step(state, rows, idx)

    events = list(state.events)
    if not events:
        events = _fallback_events(rows)
        if events:
            logger.info("No timeline recovered, emitted %d rows with explicit timestamps", len(events))

    logger.debug("Normalized %d lines (%d after merge) into %d events", len(items), len(rows), len(events))
    return events, state.summary

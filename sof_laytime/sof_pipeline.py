"""
SOF normalization pipeline.

Boundary coercion of the OCR payload, then lexing/normalization, header
extraction, canonical mapping and confidence partitioning. Also converts
accepted SOF events into laytime inputs.
"""

import logging
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .config import DEFAULT_CONFIDENCE_FLOOR, Settings, parse_confidence_floor
from .errors import PayloadError
from .laytime import LaytimeEvent
from .models import DURATION, NormalizedEvent, NormalizeResult, RawLineItem, SofSummary
from .utils.canonical_mapper import CanonicalEventMapper, collect_unmapped_labels
from .utils.confidence_filter import filter_events
from .utils.datetime_lexer import coerce_timestamp
from .utils.event_normalizer import normalize_sof_events
from .utils.header_extractor import finalize_summary
from .utils.ocr_client import NOT_CONFIGURED, OcrClient
from .utils.text_layer import SUPPORTED_EXTENSIONS, extract_lines

logger = logging.getLogger(__name__)

UNSPECIFIED_PORT = "SOF port (unspecified)"

LABEL_KEYS = ("event", "deduction_name", "notes")
START_KEYS = ("from_datetime", "start")
END_KEYS = ("to_datetime", "end")
PORT_CALL_KEYS = ("port_call_id", "portCallName")


# --------------------------
# Boundary coercion
# --------------------------
def _first(entry: Dict[str, Any], keys: Sequence[str]) -> Any:
    for key in keys:
        value = entry.get(key)
        if value is not None and value != "":
            return value
    return None


def _as_int(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _as_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def coerce_raw_items(raw_events: Any) -> List[RawLineItem]:
    """
    Reduce the OCR service's event entries to RawLineItems.

    Label aliases are tried in the order event, deduction_name, notes; start
    in the order from_datetime, start; end in the order to_datetime, end.
    Non-dict entries are skipped.

    Raises:
        PayloadError: if ``raw_events`` is not a list
    """
    if not isinstance(raw_events, list):
        raise PayloadError("'events' must be a list")

    items: List[RawLineItem] = []
    for entry in raw_events:
        if not isinstance(entry, dict):
            logger.debug("Skipping non-object event entry %r", type(entry).__name__)
            continue
        label = _first(entry, LABEL_KEYS)
        port_ref = _first(entry, PORT_CALL_KEYS)
        items.append(
            RawLineItem(
                text=str(label).strip() if label is not None else "",
                confidence=_as_confidence(entry.get("confidence")),
                page=_as_int(entry.get("page")),
                line=_as_int(entry.get("line")),
                start=coerce_timestamp(_first(entry, START_KEYS)),
                end=coerce_timestamp(_first(entry, END_KEYS)),
                port_call_ref=str(port_ref) if port_ref is not None else None,
            )
        )
    return items


def merge_summary(service_summary: Optional[Dict[str, Any]], extracted: SofSummary, lines: List[str]) -> SofSummary:
    """Service summary, else the extracted one, else a placeholder port; then shared cleanup."""
    if service_summary:
        summary = SofSummary.from_dict(service_summary)
    elif not extracted.is_empty():
        summary = extracted
    else:
        summary = SofSummary(port_name=UNSPECIFIED_PORT)
    return finalize_summary(summary, lines)


# --------------------------
# Public: normalization
# --------------------------
def normalize_items(
    items: Sequence[RawLineItem],
    confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR,
    mapper: Optional[CanonicalEventMapper] = None,
    service_summary: Optional[Dict[str, Any]] = None,
    warnings: Optional[List[str]] = None,
    error: Optional[str] = None,
) -> NormalizeResult:
    mapper = mapper or CanonicalEventMapper()
    events, extracted = normalize_sof_events(items)

    mapped: List[NormalizedEvent] = []
    for ev in events:
        match = mapper.map(ev.label)
        mapped.append(replace(ev, canonical_event=match.tag, canonical_confidence=match.confidence))

    partition = filter_events(mapped, confidence_floor)
    summary = merge_summary(service_summary, extracted, [item.text for item in items])

    logger.info(
        "Normalized %d lines into %d events (%d filtered out)",
        len(items), len(partition.accepted), len(partition.filtered_out),
    )
    return NormalizeResult(
        events=partition.accepted,
        filtered_out=partition.filtered_out,
        summary=summary,
        warnings=list(warnings or []),
        confidence_floor=confidence_floor,
        unmapped_labels=collect_unmapped_labels(mapped),
        error=error,
    )


def normalize(
    payload: Dict[str, Any],
    confidence_floor: Any = DEFAULT_CONFIDENCE_FLOOR,
    mapper: Optional[CanonicalEventMapper] = None,
) -> NormalizeResult:
    """
    Normalize a raw OCR payload.

    Args:
        payload: ``{"events": [...], "summary"?: {...}, "header"?: {...}, "warnings"?: [...]}``
        confidence_floor: Events scored below this are filtered out; an
            unusable value falls back to 0.35
        mapper: Canonical mapper; the built-in rule table when omitted

    Returns:
        NormalizeResult

    Raises:
        PayloadError: if the payload is not an object with an ``events`` list
    """
    if not isinstance(payload, dict):
        raise PayloadError("Payload must be an object")
    if "events" not in payload:
        raise PayloadError("'events' is required")
    items = coerce_raw_items(payload["events"])

    service_summary = payload.get("summary") or payload.get("header")
    if service_summary is not None and not isinstance(service_summary, dict):
        service_summary = None
    raw_warnings = payload.get("warnings") or []
    return normalize_items(
        items,
        confidence_floor=parse_confidence_floor(confidence_floor),
        mapper=mapper,
        service_summary=service_summary,
        warnings=[str(w) for w in raw_warnings] if isinstance(raw_warnings, list) else [],
        error=payload.get("error"),
    )


def ingest_document(
    filename: str,
    data: bytes,
    settings: Settings,
    client: Optional[OcrClient] = None,
    mapper: Optional[CanonicalEventMapper] = None,
    confidence_floor: Optional[float] = None,
) -> NormalizeResult:
    """
    Extract and normalize one uploaded document.

    The OCR service is used when configured. The local text layer is used when
    enabled and the service is unavailable or fails. Otherwise the result is
    empty and carries the error.
    """
    floor = settings.confidence_floor if confidence_floor is None else confidence_floor
    client = client or OcrClient(settings.ocr_endpoint, settings.ocr_timeout)

    error = NOT_CONFIGURED
    if client.configured:
        ocr = client.extract(filename, data)
        if ocr.ok:
            return normalize(ocr.to_payload(), floor, mapper)
        error = ocr.error
        logger.warning("OCR service failed for %s: %s", filename, error)

    return _local_or_error(filename, data, settings, floor, mapper, error)


def _local_or_error(
    filename: str,
    data: bytes,
    settings: Settings,
    floor: float,
    mapper: Optional[CanonicalEventMapper],
    error: Optional[str],
) -> NormalizeResult:
    if settings.enable_local_text and Path(filename).suffix.lower() in SUPPORTED_EXTENSIONS:
        logger.info("Using local text layer for %s", filename)
        items = extract_lines(filename, data)
        return normalize_items(items, floor, mapper, warnings=["Extracted from local text layer"])
    return NormalizeResult(events=[], filtered_out=[], summary=SofSummary(), confidence_floor=floor, error=error)


# --------------------------
# SOF events to laytime inputs
# --------------------------
def laytime_events_from_sof(
    events: Sequence[NormalizedEvent],
    rate_of_calculation: float = 100.0,
    port_call_id: Optional[str] = None,
) -> List[LaytimeEvent]:
    """Accepted duration events with both timestamps, as laytime deductions."""
    converted = []
    for ev in events:
        if ev.event_type != DURATION or ev.from_datetime is None or ev.to_datetime is None:
            continue
        converted.append(
            LaytimeEvent(
                label=ev.label,
                from_datetime=ev.from_datetime,
                to_datetime=ev.to_datetime,
                rate_of_calculation=rate_of_calculation,
                port_call_id=port_call_id or ev.port_call_ref,
            )
        )
    return converted


def activities_from_sof(
    events: Sequence[NormalizedEvent],
    port_call_id: str,
    count_behavior: Any = "FULL",
) -> List[Dict[str, Any]]:
    """Accepted events with a forward interval, as proration-engine activities."""
    activities = []
    for ev in events:
        if ev.from_datetime is None or ev.to_datetime is None or ev.to_datetime < ev.from_datetime:
            continue
        activities.append({
            "port_call_id": port_call_id,
            "label": ev.label,
            "canonical_event": ev.canonical_event,
            "from_datetime": ev.from_datetime.isoformat(),
            "to_datetime": ev.to_datetime.isoformat(),
            "duration_minutes": ev.duration_hours * 60.0,
            "count_behavior": count_behavior,
        })
    return activities

"""
Confidence Filter Module
Partitions normalized events into accepted and filtered-out sets.
"""

import logging
from typing import Iterable, List

from ..errors import (
    MISSING_END,
    MISSING_LABEL,
    MISSING_START,
    START_AFTER_END,
    low_confidence_warning,
)
from ..models import FilterResult, NormalizedEvent

logger = logging.getLogger(__name__)

DEFAULT_CONFIDENCE_FLOOR = 0.35


def quality_warnings(event: NormalizedEvent) -> List[str]:
    warnings = []
    if not event.label:
        warnings.append(MISSING_LABEL)
    if event.from_datetime is None:
        warnings.append(MISSING_START)
    if event.to_datetime is None:
        warnings.append(MISSING_END)
    if (
        event.from_datetime is not None
        and event.to_datetime is not None
        and event.from_datetime > event.to_datetime
    ):
        warnings.append(START_AFTER_END)
    return warnings


def filter_events(
    events: Iterable[NormalizedEvent], confidence_floor: float = DEFAULT_CONFIDENCE_FLOOR
) -> FilterResult:
    """
    Attach data-quality warnings and split events on the confidence floor.

    Every event lands in exactly one list. Events without a confidence score
    are always accepted. Nothing is dropped.

    Args:
        events: Normalized events
        confidence_floor: Events scored strictly below this go to filtered_out

    Returns:
        FilterResult with both lists carrying the full event payload
    """
    accepted: List[NormalizedEvent] = []
    filtered_out: List[NormalizedEvent] = []

    for event in events:
        event = event.with_warnings(*quality_warnings(event))
        if event.confidence is not None and event.confidence < confidence_floor:
            filtered_out.append(event.with_warnings(low_confidence_warning(confidence_floor)))
        else:
            accepted.append(event)

    if filtered_out:
        logger.info("Filtered out %d low-confidence events (floor %s)", len(filtered_out), confidence_floor)
    return FilterResult(accepted=accepted, filtered_out=filtered_out, confidence_floor=confidence_floor)

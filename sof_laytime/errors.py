"""
Error taxonomy and warning strings shared by the SOF pipeline and laytime modules.

Malformed document content never raises: it degrades to None fields and
per-event warnings. Only structurally invalid call shapes and unusable
configuration raise, and only at the caller-facing boundary.
"""

MISSING_LABEL = "Missing event label"
MISSING_START = "Missing start time"
MISSING_END = "Missing end time"
START_AFTER_END = "Start after end"
NO_DATE_CONTEXT = "No date context"


def low_confidence_warning(floor: float) -> str:
    return f"Low confidence (< {floor:g})"


class ConfigurationError(ValueError):
    """Unusable configuration, e.g. an unknown calculation method."""


class PayloadError(ValueError):
    """Structurally invalid input shape, e.g. an OCR payload without an events list."""

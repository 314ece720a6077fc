"""
Date/Time Lexer Module
Recovers dates, times, ranges and month spans from noisy OCR text.

Every parser returns None for tokens it does not recognise. Nothing here
guesses a missing day, month or year.
"""

import logging
import re
from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple, Union

import dateparser

logger = logging.getLogger(__name__)

MONTH_NAMES = [
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
]
MONTH_MAP = {name[:3]: idx for idx, name in enumerate(MONTH_NAMES, start=1)}

# OCR letter-spacing artifacts seen on scanned SOFs.
OCR_MONTH_FIXES = [
    (re.compile(r"J\s*an", re.IGNORECASE), "Jan"),
    (re.compile(r"F\s*eb", re.IGNORECASE), "Feb"),
    (re.compile(r"M\s*ar", re.IGNORECASE), "Mar"),
    (re.compile(r"A\s*pr", re.IGNORECASE), "Apr"),
    (re.compile(r"M\s*ay", re.IGNORECASE), "May"),
    (re.compile(r"J\s*un", re.IGNORECASE), "Jun"),
    (re.compile(r"J\s*ul", re.IGNORECASE), "Jul"),
    (re.compile(r"A\s*ug", re.IGNORECASE), "Aug"),
    (re.compile(r"S\s*ep", re.IGNORECASE), "Sep"),
    (re.compile(r"O\s*ct", re.IGNORECASE), "Oct"),
    (re.compile(r"N\s*ov", re.IGNORECASE), "Nov"),
    (re.compile(r"D\s*ec", re.IGNORECASE), "Dec"),
    (re.compile(r"-\)\s*an", re.IGNORECASE), "-Jan"),
    (re.compile(r"\)\s*an", re.IGNORECASE), "Jan"),
    (re.compile(r"\)\s*ug", re.IGNORECASE), "Aug"),
]

_YEAR = r"(\d{4}|\d{2})(?!\d|[:.]\d)"
DATE_PATTERNS = [
    # 15-Feb-2025, 15/Feb/2025
    re.compile(r"(?<!\d)(\d{1,2})\s*[-/]\s*([A-Za-z]{3,9})\.?\s*[-/]\s*" + _YEAR),
    # 15 Feb 2025, 15 February 2025
    re.compile(r"(?<!\d)(\d{1,2})\s+([A-Za-z]{3,9})\.?,?\s+" + _YEAR),
    # 22.01.2017
    re.compile(r"(?<![\d.])(\d{1,2})\.(\d{1,2})\." + _YEAR),
]

TIME_TOKEN = r"(\d{1,2})[:.](\d{2})(?::\d{2})?"
TIME_RE = re.compile(r"(?<![\d.,:])" + TIME_TOKEN + r"(?!\d|[.:]\d)")
TIME_RANGE_RE = re.compile(
    r"(?<![\d.,:])" + TIME_TOKEN + r"\s*(?:hrs?\s*)?(?:-|–|—|→|to)\s*" + TIME_TOKEN + r"(?!\d|[.:]\d)",
    re.IGNORECASE,
)
TIME_ONLY_RE = re.compile(r"^\s*" + TIME_TOKEN + r"\s*$")
MONTH_SPAN_RE = re.compile(r"(\d{1,2})\s*[-–—]\s*(\d{1,2})\s+([A-Za-z]{3,})\.?\s+(\d{4})")
RANGE_SPLIT_RE = re.compile(r"(?<![A-Za-z])to|to(?![A-Za-z])|[-–—→.]", re.IGNORECASE)

_WEEKDAY = r"(?:mon|tue|wed|thu|fri|sat|sun)[a-z]*\.?,?\s+"
_DATE_TOKEN = (
    r"(?:\d{1,2}(?:st|nd|rd|th)?\s*[-/ ]\s*[A-Za-z]{3,9}\.?,?\s*[-/ ]\s*(?:\d{4}|\d{2})(?!\d)"
    r"|\d{1,2}\.\d{1,2}\.(?:\d{4}|\d{2})(?!\d))"
)
LEADING_DATE_RE = re.compile(r"^(?:" + _WEEKDAY + r")?" + _DATE_TOKEN + r"\s*[\\/|,\-–—]*\s*", re.IGNORECASE)
LEADING_TIME_RE = re.compile(
    r"^\d{1,2}[:.]\d{2}(?::\d{2})?\s*(?:hrs?\b|h\b)?\s*(?:[-–—→]|to\b)?\s*", re.IGNORECASE
)
LT_RE = re.compile(r"\bL\.?T\.?(?=\s|$|[^A-Za-z])", re.IGNORECASE)
DATE_ANYWHERE_RE = re.compile(r"(?:" + _WEEKDAY + r")?" + _DATE_TOKEN, re.IGNORECASE)
TIME_ANYWHERE_RE = re.compile(r"\d{1,2}[:.]\d{2}(?::\d{2})?\s*(?:hrs?\b)?", re.IGNORECASE)
SEPARATORS_RE = re.compile(r"[\\/|,\-–—→:\s]+")

DateRange = Tuple[Optional[date], Optional[date]]


def pivot_year(year: str) -> int:
    """Expand a 2-digit year: above 50 is 19xx, otherwise 20xx."""
    value = int(year)
    if len(year) == 2:
        return 1900 + value if value > 50 else 2000 + value
    return value


def _month_from_token(token: str) -> Optional[int]:
    if token.isdigit():
        month = int(token)
        return month if 1 <= month <= 12 else None
    lowered = token.lower()
    month = MONTH_MAP.get(lowered[:3])
    if month is None:
        return None
    full_name = MONTH_NAMES[month - 1]
    if full_name.startswith(lowered) or lowered == "sept":
        return month
    return None


def clean_date_text(text: str) -> str:
    cleaned = re.sub(r"\s+", " ", text)
    cleaned = re.sub(r"-\s+", "-", cleaned)
    cleaned = re.sub(r"\s+-", "-", cleaned)
    cleaned = re.sub(r"(?<=\d)(?:st|nd|rd|th)\b", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"(?<=[A-Za-z])\s+(?=[A-Za-z])", "", cleaned)
    for pattern, replacement in OCR_MONTH_FIXES:
        cleaned = pattern.sub(replacement, cleaned)
    return cleaned


def parse_date(text: Optional[str]) -> Optional[date]:
    """
    Find the first recognisable date in ``text``.

    Recognised forms are D-MON-YYYY, D/MON/YYYY, "D Month YYYY" and D.M.YYYY,
    with ordinal suffixes and OCR letter spacing repaired first.

    Args:
        text: Raw line text

    Returns:
        The parsed date, or None when no form matches or the date is invalid
    """
    if not text:
        return None
    cleaned = clean_date_text(text)
    for pattern in DATE_PATTERNS:
        for match in pattern.finditer(cleaned):
            day, month_token, year = match.groups()
            month = _month_from_token(month_token)
            if month is None:
                continue
            try:
                return date(pivot_year(year), month, int(day))
            except ValueError:
                continue
    return None


def parse_time(text: Optional[str]) -> Optional[time]:
    """Find the first H:MM or H.MM time of day in ``text``."""
    if not text:
        return None
    for match in TIME_RE.finditer(text):
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour <= 23 and minute <= 59:
            return time(hour, minute)
    return None


def parse_time_range(text: Optional[str]) -> Tuple[Optional[time], Optional[time]]:
    """Parse "HH:MM - HH:MM" (or to / dash / arrow) into start and end times."""
    if not text:
        return None, None
    match = TIME_RANGE_RE.search(text)
    if not match:
        return None, None
    h1, m1, h2, m2 = (int(g) for g in match.groups())
    if h1 > 23 or h2 > 23 or m1 > 59 or m2 > 59:
        return None, None
    return time(h1, m1), time(h2, m2)


def parse_date_range(text: Optional[str]) -> DateRange:
    """
    Split a compact range such as "15/Feb/2025 to 20/Feb/2025" into two dates.

    Whitespace is removed first and the text is split on "to", a dash, an arrow
    or a dot. Anything other than exactly two parts is not a range.
    """
    if not text:
        return None, None
    compact = re.sub(r"\s+", "", text)
    parts = RANGE_SPLIT_RE.split(compact)
    if len(parts) != 2:
        return None, None
    start_raw, end_raw = parts
    start = parse_date(start_raw) or parse_date(end_raw)
    end = parse_date(end_raw)
    return start, end


def parse_month_span(text: Optional[str]) -> DateRange:
    """Parse "11-15 February 2026" into two dates in the same month."""
    if not text:
        return None, None
    match = MONTH_SPAN_RE.search(text)
    if not match:
        return None, None
    d1, d2, month_token, year = match.groups()
    month = _month_from_token(month_token)
    if month is None:
        return None, None
    try:
        return date(int(year), month, int(d1)), date(int(year), month, int(d2))
    except ValueError:
        return None, None


def attach_end_date(start: Optional[datetime], end: Union[datetime, time, None]) -> Optional[datetime]:
    """
    Anchor a date-less end time to the start's date.

    A result earlier than the start is rolled forward 24h, which is how a span
    crossing midnight ("23:00 - 02:00") is written on a SOF.
    """
    if end is None:
        return None
    if isinstance(end, datetime):
        return end
    if start is None:
        return None
    candidate = datetime.combine(start.date(), end)
    if candidate < start:
        candidate += timedelta(days=1)
    return candidate


def strip_datetime_prefix(label: str) -> str:
    """Remove leading date/time tokens and "LT" markers from an event label."""
    out = LEADING_DATE_RE.sub("", label.strip())
    for _ in range(2):
        stripped = LEADING_TIME_RE.sub("", out)
        if stripped == out:
            break
        out = stripped
    out = LT_RE.sub("", out)
    out = re.sub(r"^[\\/|,\-–—:\s]+", "", out)
    return re.sub(r"\s+", " ", out).strip()


def is_pure_datetime(label: str) -> bool:
    """True when nothing but date/time tokens and separators remain."""
    tmp = DATE_ANYWHERE_RE.sub("", label)
    tmp = TIME_ANYWHERE_RE.sub("", tmp)
    tmp = LT_RE.sub("", tmp)
    tmp = SEPARATORS_RE.sub("", tmp)
    return tmp == ""


def coerce_timestamp(value) -> Union[datetime, time, None]:
    """
    Coerce an OCR-supplied start/end value into a datetime or a bare time.

    ISO-8601 strings are read directly with any UTC offset dropped to wall-clock
    time. Other strings go through dateparser with day-first, strict parsing so
    that a value missing its day, month or year is rejected rather than filled in.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.replace(tzinfo=None)
    if isinstance(value, date):
        return datetime.combine(value, time())
    if isinstance(value, time):
        return value
    text = str(value).strip()
    if not text:
        return None
    match = TIME_ONLY_RE.match(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        return time(hour, minute) if hour <= 23 and minute <= 59 else None
    iso = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return datetime.fromisoformat(iso).replace(tzinfo=None)
    except ValueError:
        pass
    parsed = dateparser.parse(
        text,
        languages=["en"],
        settings={
            "DATE_ORDER": "DMY",
            "STRICT_PARSING": True,
            "RETURN_AS_TIMEZONE_AWARE": False,
        },
    )
    if parsed is None:
        logger.debug("Unparseable timestamp value %r", text)
        return None
    return parsed.replace(tzinfo=None)

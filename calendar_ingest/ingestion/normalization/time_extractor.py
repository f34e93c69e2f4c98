"""
Clock-time extraction from free-text descriptions.

Sources often publish timed events as all-day entries and put the real time
in the description ("Doors open 5:30 p.m., show at 6:00 p.m."). The earliest
time mentioned is treated as the actionable start.
"""

import logging
import re
from datetime import datetime, tzinfo
from typing import Optional

logger = logging.getLogger(__name__)

SCAN_LIMIT = 500

# "6:30 pm", "6:30pm", "6:30 p.m.", "6:30 P. M."
_HOUR_MINUTE_RE = re.compile(
    r"(?<!\d)(\d{1,2}):(\d{2})\s*([ap])\.?\s*m\.?(?![a-z])", re.IGNORECASE
)
# "7 pm", "7pm", "7 p.m."
_HOUR_ONLY_RE = re.compile(r"(?<!\d)(\d{1,2})\s*([ap])\.?\s*m\.?(?![a-z])", re.IGNORECASE)


def to_24_hour(hour: int, meridiem: str) -> int:
    """Convert a 12-hour clock hour to 24-hour form (12 am -> 0, 12 pm -> 12)."""
    is_pm = meridiem.lower() == "p"
    if hour == 12:
        return 12 if is_pm else 0
    return hour + 12 if is_pm else hour


def _candidates(text: str) -> list[tuple[int, int]]:
    found: list[tuple[int, int]] = []
    covered: list[tuple[int, int]] = []

    for m in _HOUR_MINUTE_RE.finditer(text):
        hour, minute = int(m.group(1)), int(m.group(2))
        covered.append(m.span())
        if not 1 <= hour <= 12 or minute > 59:
            continue
        found.append((to_24_hour(hour, m.group(3)), minute))

    for m in _HOUR_ONLY_RE.finditer(text):
        # "6:30 pm" also matches as "30 pm"; skip anything inside an H:MM hit
        if any(start <= m.start() < end for start, end in covered):
            continue
        hour = int(m.group(1))
        if not 1 <= hour <= 12:
            continue
        found.append((to_24_hour(hour, m.group(2)), 0))

    return found


def extract_time_from_description(text: Optional[str]) -> Optional[str]:
    """
    Return the earliest clock time mentioned near the top of ``text``.

    Parameters
    ----------
    text : str or None
        Plain-text description. Only the first 500 characters are scanned.

    Returns
    -------
    str or None
        ``HH:MM`` in 24-hour form, or None when nothing plausible is found.
    """
    if not text:
        return None

    candidates = _candidates(text[:SCAN_LIMIT])
    if not candidates:
        return None

    hour, minute = min(candidates)
    return f"{hour:02d}:{minute:02d}"


def resolve_start_time(
    start: Optional[datetime],
    is_all_day: bool,
    description: Optional[str],
    tz: tzinfo,
) -> tuple[Optional[datetime], Optional[str]]:
    """
    Combine the structured start with any time found in the description.

    A structured start counts as "no time" when the source flags it all-day or
    it falls exactly on local midnight. In that case a description time, if
    present, is applied to the local start date.

    Returns
    -------
    tuple
        ``(start, time)`` where ``start`` is timezone-aware and ``time`` is
        ``HH:MM`` or None for all-day/unknown.
    """
    if start is None:
        return None, None

    local = start.astimezone(tz) if start.tzinfo else start.replace(tzinfo=tz)
    untimed = is_all_day or (local.hour == 0 and local.minute == 0)

    if not untimed:
        return local, local.strftime("%H:%M")

    extracted = extract_time_from_description(description)
    midnight = local.replace(hour=0, minute=0, second=0, microsecond=0)
    if extracted is None:
        return midnight, None

    hour, minute = (int(p) for p in extracted.split(":"))
    logger.debug(f"Using description time {extracted} for untimed start {local.date()}")
    return midnight.replace(hour=hour, minute=minute), extracted

"""
iCalendar Feed Adapter.

Fetches a ``text/calendar`` document and turns each VEVENT into a RawEvent.
Many event-calendar plugins serve their HTML error page with a 200 status, so
the payload is validated before parsing.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, tzinfo

import httpx
from icalendar import Calendar

from calendar_ingest.exceptions import EventParseError, InvalidFeedError, WrongContentTypeError
from calendar_ingest.schemas.event import RawEvent

from .base_adapter import AdapterConfig, BaseSourceAdapter, FetchResult, SourceType

logger = logging.getLogger(__name__)

CALENDAR_MARKER = "BEGIN:VCALENDAR"
MIN_FEED_LENGTH = 100
ICAL_ACCEPT = "text/calendar, application/calendar, text/plain"
HTML_CONTENT_TYPES = {"text/html", "application/xhtml+xml"}
HTML_SNIFF_CHARS = 200

_HTML_TAG_RE = re.compile(r"<(?:!doctype\s+html|html|head|body)\b", re.IGNORECASE)


@dataclass
class ICalAdapterConfig(AdapterConfig):
    """Configuration for iCalendar feeds."""

    def __post_init__(self):
        """Set source type to ICAL."""
        self.source_type = SourceType.ICAL


def looks_like_html(text: str, content_type: str | None = None) -> bool:
    """True for an HTML ``Content-Type`` or an HTML tag near the top of ``text``."""
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime in HTML_CONTENT_TYPES:
        return True
    return bool(_HTML_TAG_RE.search(text[:HTML_SNIFF_CHARS]))


def validate_ical_payload(
    content: str,
    url: str = "",
    source_id: str | None = None,
    content_type: str | None = None,
) -> str:
    """
    Check that ``content`` looks like a calendar document and return it stripped.

    A body that starts with ``BEGIN:VCALENDAR`` is accepted whatever the
    server's ``Content-Type`` says.

    Raises:
        WrongContentTypeError: The server sent an HTML page
        InvalidFeedError: Anything else that is not a usable calendar
    """
    text = (content or "").lstrip("\ufeff").strip()
    if not text.startswith(CALENDAR_MARKER) and looks_like_html(text, content_type):
        raise WrongContentTypeError(
            f"Received HTML instead of a calendar feed from {url}", source_id=source_id, url=url
        )
    if not text.startswith(CALENDAR_MARKER):
        raise InvalidFeedError(
            f"Payload from {url} does not start with {CALENDAR_MARKER}",
            source_id=source_id,
            url=url,
        )
    if len(text) < MIN_FEED_LENGTH:
        raise InvalidFeedError(
            f"Calendar feed from {url} is empty ({len(text)} chars)", source_id=source_id, url=url
        )
    return text


def _to_datetime(value, tz: tzinfo) -> tuple[datetime | None, bool]:
    """Return (aware datetime, is_all_day) for a DTSTART/DTEND value."""
    if value is None:
        return None, False
    dt = value.dt
    if isinstance(dt, datetime):
        # Floating times are local to the venue
        return (dt if dt.tzinfo else dt.replace(tzinfo=tz)), False
    if isinstance(dt, date):
        return datetime(dt.year, dt.month, dt.day, tzinfo=tz), True
    raise EventParseError(f"Unsupported date value: {dt!r}")


def _first_category(component) -> str | None:
    categories = component.get("categories")
    if categories is None:
        return None
    if not isinstance(categories, list):
        categories = [categories]
    for entry in categories:
        for cat in getattr(entry, "cats", None) or []:
            name = str(cat).strip()
            if name:
                return name
    return None


def vevent_to_raw(component, tz: tzinfo) -> RawEvent:
    """Map one VEVENT component onto a RawEvent."""
    start, is_all_day = _to_datetime(component.get("dtstart"), tz)
    if start is None:
        raise EventParseError("VEVENT has no DTSTART")
    end, _ = _to_datetime(component.get("dtend"), tz)

    title = str(component.get("summary") or "").strip() or "Untitled Event"
    location = str(component.get("location") or "").strip() or None
    url = component.get("url")

    return RawEvent(
        title=title,
        description=str(component.get("description") or ""),
        location=location,
        start=start,
        end=end,
        is_all_day=is_all_day,
        uid=str(component.get("uid")) if component.get("uid") else None,
        url=str(url) if url else None,
        detected_category=_first_category(component),
    )


def parse_ical_document(content: str, tz: tzinfo) -> tuple[list[RawEvent], list[str]]:
    """
    Parse a validated calendar document.

    Malformed VEVENTs are skipped and reported; the rest of the feed is kept.

    Returns:
        (events, per-entry error messages)
    """
    cal = Calendar.from_ical(content)
    events: list[RawEvent] = []
    errors: list[str] = []

    for component in cal.walk("VEVENT"):
        try:
            events.append(vevent_to_raw(component, tz))
        except Exception as e:
            uid = component.get("uid", "?")
            logger.warning(f"Skipping malformed VEVENT {uid}: {e}")
            errors.append(f"VEVENT {uid}: {e}")

    return events, errors


class ICalAdapter(BaseSourceAdapter):
    """Adapter for iCalendar (``.ics``) feeds."""

    def _validate_config(self) -> None:
        if not self.config.url:
            raise ValueError(f"iCal source '{self.config.source_id}' requires a url")

    async def _fetch_raw(self, client: httpx.AsyncClient, result: FetchResult) -> None:
        response = await self._get(client, self.config.url, headers={"Accept": ICAL_ACCEPT})
        content = validate_ical_payload(
            response.text,
            self.config.url,
            self.source_id,
            content_type=response.headers.get("content-type"),
        )

        events, errors = parse_ical_document(content, self.config.tz)
        result.raw_data.extend(events)
        result.errors.extend(errors)
        result.metadata["parse_failures"] = len(errors)
        result.metadata["content_length"] = len(content)

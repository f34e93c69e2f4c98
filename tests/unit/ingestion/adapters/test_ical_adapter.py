"""Unit tests for the iCalendar feed adapter."""

import asyncio
from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import httpx
import pytest

from calendar_ingest.exceptions import InvalidFeedError, WrongContentTypeError
from calendar_ingest.ingestion.adapters.ical_adapter import (
    ICalAdapter,
    ICalAdapterConfig,
    parse_ical_document,
    validate_ical_payload,
)

# =============================================================================
# TEST DATA
# =============================================================================

LA = ZoneInfo("America/Los_Angeles")
FEED_URL = "https://museum.example/?post_type=tribe_events&ical=1"

SAMPLE_FEED = "\r\n".join(
    [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        "PRODID:-//Museum//Events//EN",
        "BEGIN:VEVENT",
        "UID:evt-utc@museum",
        "SUMMARY:Art After Dark",
        "DTSTART:20251018T180000Z",
        "DTEND:20251018T200000Z",
        "LOCATION:Bonita Museum\\, 4355 Bonita Rd\\, Bonita\\, CA 91902",
        "DESCRIPTION:Live music and gallery tours",
        "CATEGORIES:Music,Family",
        "URL:https://museum.example/events/art-after-dark",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:evt-allday@museum",
        "SUMMARY:Family Day",
        "DTSTART;VALUE=DATE:20251019",
        "DESCRIPTION:Doors open at 10am",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:evt-floating@museum",
        "SUMMARY:Sketch Club",
        "DTSTART:20251020T170000",
        "END:VEVENT",
        "BEGIN:VEVENT",
        "UID:evt-broken@museum",
        "SUMMARY:No Start",
        "END:VEVENT",
        "END:VCALENDAR",
        "",
    ]
)


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def adapter():
    return ICalAdapter(
        ICalAdapterConfig(
            source_id="museum",
            source_name="Bonita Museum",
            url=FEED_URL,
            max_retries=0,
        )
    )


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


async def _fetch(adapter, handler):
    async with _client(handler) as client:
        return await adapter.fetch(client)


# =============================================================================
# TEST CLASSES
# =============================================================================


class TestValidateIcalPayload:
    """Tests for validate_ical_payload."""

    def test_accepts_calendar(self):
        """Should return the stripped document."""
        assert validate_ical_payload("\ufeff" + SAMPLE_FEED).startswith("BEGIN:VCALENDAR")

    def test_html_rejected(self):
        """Should flag an HTML page as the wrong content type."""
        with pytest.raises(WrongContentTypeError):
            validate_ical_payload("<!DOCTYPE html><html><body>Not found</body></html>", FEED_URL)

    @pytest.mark.parametrize(
        "body",
        [
            "<!-- maintenance page -->\n<html><body>Back soon</body></html>",
            "<head><title>Error</title></head><body>Not found</body>",
            "<?xml version='1.0'?><!DOCTYPE html PUBLIC '-//W3C//DTD XHTML 1.0//EN'>",
        ],
    )
    def test_html_not_at_start_rejected(self, body):
        """Should recognize HTML that opens with a comment, a prolog or a bare head."""
        with pytest.raises(WrongContentTypeError):
            validate_ical_payload(body, FEED_URL)

    def test_html_content_type_rejected(self):
        """Should trust an HTML Content-Type when the body is not a calendar."""
        with pytest.raises(WrongContentTypeError):
            validate_ical_payload(
                "Service temporarily unavailable", FEED_URL, content_type="text/html; charset=UTF-8"
            )

    def test_calendar_with_html_content_type_accepted(self):
        """Should accept a real calendar even when the server mislabels it."""
        assert validate_ical_payload(SAMPLE_FEED, content_type="text/html").startswith("BEGIN:VCALENDAR")

    def test_missing_marker_rejected(self):
        """Should reject payloads that are not calendars."""
        with pytest.raises(InvalidFeedError):
            validate_ical_payload('{"events": []}')

    def test_empty_calendar_rejected(self):
        """Should reject a calendar too short to hold an event."""
        with pytest.raises(InvalidFeedError, match="empty"):
            validate_ical_payload("BEGIN:VCALENDAR\r\nEND:VCALENDAR\r\n")


class TestParseIcalDocument:
    """Tests for parse_ical_document."""

    def test_parses_events_and_skips_broken(self):
        """Should keep good VEVENTs and report the malformed one."""
        events, errors = parse_ical_document(SAMPLE_FEED, LA)

        assert [e.title for e in events] == ["Art After Dark", "Family Day", "Sketch Club"]
        assert len(errors) == 1
        assert "evt-broken@museum" in errors[0]

    def test_timed_event_fields(self):
        """Should map summary, location, category and times."""
        event = parse_ical_document(SAMPLE_FEED, LA)[0][0]
        assert event.start == datetime(2025, 10, 18, 18, 0, tzinfo=timezone.utc)
        assert event.end == datetime(2025, 10, 18, 20, 0, tzinfo=timezone.utc)
        assert event.location == "Bonita Museum, 4355 Bonita Rd, Bonita, CA 91902"
        assert event.detected_category == "Music"
        assert event.url == "https://museum.example/events/art-after-dark"
        assert event.is_all_day is False

    def test_date_only_is_all_day(self):
        """Should treat a DATE value as an all-day event at local midnight."""
        event = parse_ical_document(SAMPLE_FEED, LA)[0][1]
        assert event.is_all_day is True
        assert event.start == datetime(2025, 10, 19, tzinfo=LA)

    def test_floating_time_uses_source_zone(self):
        """Should localize floating times to the source timezone."""
        event = parse_ical_document(SAMPLE_FEED, LA)[0][2]
        assert event.start == datetime(2025, 10, 20, 17, 0, tzinfo=LA)


class TestICalAdapterFetch:
    """Tests for ICalAdapter.fetch."""

    def test_successful_fetch(self, adapter):
        """Should return parsed events and metadata."""

        def handler(request):
            assert "text/calendar" in request.headers["accept"]
            return httpx.Response(200, text=SAMPLE_FEED)

        result = asyncio.run(_fetch(adapter, handler))

        assert result.success is True
        assert result.total_fetched == 3
        assert result.metadata["parse_failures"] == 1
        assert result.source_name == "Bonita Museum"

    def test_html_response_fails_source(self, adapter):
        """Should fail the source, not raise, on an HTML error page."""
        result = asyncio.run(
            _fetch(adapter, lambda r: httpx.Response(200, text="<html><body>Oops</body></html>"))
        )
        assert result.success is False
        assert result.raw_data == []
        assert result.errors[0].startswith("WrongContentTypeError")

    def test_html_content_type_header_fails_source(self, adapter):
        """Should use the response Content-Type to spot an HTML error page."""

        def html_page(request):
            return httpx.Response(
                200, text="Sorry, this calendar is unavailable", headers={"content-type": "text/html"}
            )

        result = asyncio.run(_fetch(adapter, html_page))
        assert result.success is False
        assert result.errors[0].startswith("WrongContentTypeError")

    def test_http_error_fails_source(self, adapter):
        """Should report the status code of a failed request."""
        result = asyncio.run(_fetch(adapter, lambda r: httpx.Response(503)))
        assert result.success is False
        assert "HTTP 503" in result.errors[0]

    def test_timeout_fails_source(self, adapter):
        """Should capture a timeout as a feed failure."""

        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        result = asyncio.run(_fetch(adapter, handler))
        assert result.success is False
        assert "Timed out" in result.errors[0]

    def test_requires_url(self):
        """Should refuse a config without a URL."""
        with pytest.raises(ValueError):
            ICalAdapter(ICalAdapterConfig(source_id="x", source_name="X", url=""))

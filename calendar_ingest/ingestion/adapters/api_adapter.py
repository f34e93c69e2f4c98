"""
Events Calendar REST API Adapter.

Adapter for WordPress sites running The Events Calendar plugin, which expose
``/wp-json/tribe/events/v1/events`` as paged JSON.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import httpx

from calendar_ingest.exceptions import EventParseError
from calendar_ingest.ingestion.normalization.text_cleaner import strip_html, strip_or_none
from calendar_ingest.schemas.event import RawEvent

from .base_adapter import AdapterConfig, BaseSourceAdapter, FetchResult, SourceType

API_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass
class APIAdapterConfig(AdapterConfig):
    """Configuration for REST API adapters."""

    per_page: int = 50
    max_pages: int = 10
    days_ahead: int = 365
    default_state: str = "CA"

    def __post_init__(self):
        """Set source type to API."""
        self.source_type = SourceType.API


class APIAdapter(BaseSourceAdapter):
    """
    Adapter for Events Calendar JSON endpoints.

    Pages are requested sequentially until ``total_pages`` or ``max_pages``
    is reached. A failure after the first page keeps what was already read.
    """

    @property
    def api_config(self) -> APIAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    def _validate_config(self) -> None:
        if not self.api_config.url:
            raise ValueError(f"API source '{self.config.source_id}' requires a url")
        if self.api_config.per_page < 1:
            raise ValueError("per_page must be positive")

    def build_params(self, page: int, today: datetime | None = None) -> dict:
        today = today or datetime.now(UTC)
        return {
            "per_page": self.api_config.per_page,
            "page": page,
            "start_date": today.strftime("%Y-%m-%d"),
            "end_date": (today + timedelta(days=self.api_config.days_ahead)).strftime("%Y-%m-%d"),
            "status": "publish",
        }

    async def _fetch_raw(self, client: httpx.AsyncClient, result: FetchResult) -> None:
        page = 1
        total_pages = 1
        parse_failures = 0

        while page <= min(total_pages, self.api_config.max_pages):
            try:
                response = await self._get(
                    client,
                    self.api_config.url,
                    headers={"Accept": "application/json"},
                    params=self.build_params(page),
                )
                payload = response.json()
            except Exception:
                if page == 1:
                    raise
                self.logger.warning(f"Stopping pagination at page {page}", exc_info=True)
                result.errors.append(f"page {page}: pagination aborted")
                break

            total_pages = int(payload.get("total_pages") or 1)
            for entry in payload.get("events") or []:
                try:
                    result.raw_data.append(self.parse_event(entry))
                except Exception as e:
                    parse_failures += 1
                    result.errors.append(f"event {entry.get('id', '?')}: {e}")
            page += 1

        result.metadata["pages_fetched"] = page - 1
        result.metadata["total_pages"] = total_pages
        result.metadata["parse_failures"] = parse_failures

    def parse_event(self, entry: dict) -> RawEvent:
        """Map one API event object onto a RawEvent."""
        start = self._parse_time(entry, "start_date")
        if start is None:
            raise EventParseError("event has no start_date")

        venue = entry.get("venue") or {}
        # The API returns [] rather than null when no venue is attached
        if not isinstance(venue, dict):
            venue = {}

        categories = entry.get("categories") or []
        detected = categories[0].get("name") if categories and isinstance(categories[0], dict) else None

        return RawEvent(
            title=strip_html(entry.get("title")) or "Untitled Event",
            description=entry.get("description") or "",
            location=strip_or_none(strip_html(venue.get("venue"))),
            address=self.format_address(venue),
            start=start,
            end=self._parse_time(entry, "end_date"),
            is_all_day=bool(entry.get("all_day")),
            uid=str(entry["id"]) if entry.get("id") is not None else None,
            url=entry.get("url"),
            detected_category=strip_html(detected) if detected else None,
        )

    def format_address(self, venue: dict) -> str | None:
        """Join street, city, state and zip, skipping blanks."""
        if not venue:
            return None
        state = venue.get("stateprovince") or venue.get("state") or self.api_config.default_state
        parts = [venue.get("address"), venue.get("city"), state, venue.get("zip")]
        joined = ", ".join(str(p).strip() for p in parts if p and str(p).strip())
        return joined or None

    def _parse_time(self, entry: dict, key: str) -> datetime | None:
        """Prefer the ``utc_`` variant; fall back to the venue-local value."""
        utc_value = entry.get(f"utc_{key}")
        if utc_value:
            return datetime.strptime(utc_value, API_TIME_FORMAT).replace(tzinfo=UTC)
        local_value = entry.get(key)
        if local_value:
            return datetime.strptime(local_value, API_TIME_FORMAT).replace(tzinfo=self.config.tz)
        return None

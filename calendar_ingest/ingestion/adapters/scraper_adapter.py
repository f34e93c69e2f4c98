"""
Scraper Source Adapter.

Two-step HTML scraping: an index page lists event links, each detail page
carries the event either as URL-encoded data attributes on an "add to
calendar" element or as a linked ``.ics`` attachment.
"""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from urllib.parse import unquote, urljoin

import httpx
from bs4 import BeautifulSoup

from calendar_ingest.exceptions import EventParseError
from calendar_ingest.schemas.event import RawEvent

from .base_adapter import AdapterConfig, BaseSourceAdapter, FetchResult, SourceType
from .ical_adapter import ICAL_ACCEPT, parse_ical_document, validate_ical_payload

DATA_TIME_FORMAT = "%Y%m%dT%H%M%SZ"
HTML_ACCEPT = "text/html,application/xhtml+xml"


@dataclass
class ScraperAdapterConfig(AdapterConfig):
    """Configuration for scraper-based adapters."""

    base_url: str = ""
    link_selector: str = 'h3 a[href*="/events/"]'
    data_selector: str = "ps-ics-file-link"
    attachment_selector: str = 'a[href$=".ics"], a[href*="ical="]'
    max_pages: int = 50
    max_concurrency: int = 8

    def __post_init__(self):
        """Set source type to SCRAPER."""
        self.source_type = SourceType.SCRAPER


def parse_data_time(value: str | None) -> datetime | None:
    """Parse a ``YYYYMMDDTHHMMSSZ`` attribute value as a UTC instant."""
    if not value:
        return None
    try:
        return datetime.strptime(unquote(value).strip(), DATA_TIME_FORMAT).replace(tzinfo=UTC)
    except ValueError as e:
        raise EventParseError(f"Unparseable event time {value!r}") from e


def _attr(element, name: str) -> str | None:
    value = element.get(name)
    if value is None:
        return None
    value = unquote(value).strip()
    return value or None


class ScraperAdapter(BaseSourceAdapter):
    """
    Adapter for web scraping sources.

    Detail pages are fetched concurrently under a semaphore. Each page's
    outcome is collected independently so one broken page only costs that
    page.
    """

    @property
    def scraper_config(self) -> ScraperAdapterConfig:
        """Get typed config."""
        return self.config  # type: ignore[return-value]

    def _validate_config(self) -> None:
        if not self.scraper_config.url:
            raise ValueError(f"Scraper source '{self.config.source_id}' requires a url")
        if self.scraper_config.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")

    async def _fetch_raw(self, client: httpx.AsyncClient, result: FetchResult) -> None:
        index = await self._get(client, self.scraper_config.url, headers={"Accept": HTML_ACCEPT})
        links = self.extract_links(index.text)
        result.metadata["links_found"] = len(links)

        if not links:
            self.logger.warning(f"No event links matched '{self.scraper_config.link_selector}'")
            return

        semaphore = asyncio.Semaphore(self.scraper_config.max_concurrency)

        async def scrape(url: str) -> list[RawEvent]:
            async with semaphore:
                return await self._scrape_detail(client, url)

        outcomes = await asyncio.gather(*(scrape(u) for u in links), return_exceptions=True)

        failed = 0
        for url, outcome in zip(links, outcomes):
            if isinstance(outcome, BaseException):
                failed += 1
                self.logger.warning(f"Failed to scrape {url}: {outcome}")
                result.errors.append(f"{url}: {outcome}")
                continue
            result.raw_data.extend(outcome)

        result.metadata["pages_scraped"] = len(links) - failed
        result.metadata["pages_failed"] = failed

    def extract_links(self, html: str) -> list[str]:
        """Return absolute, de-duplicated detail-page URLs in page order."""
        soup = BeautifulSoup(html, "lxml")
        base = self.scraper_config.base_url or self.scraper_config.url
        urls = [
            urljoin(base, a["href"])
            for a in soup.select(self.scraper_config.link_selector)
            if a.get("href")
        ]
        return list(dict.fromkeys(urls))[: self.scraper_config.max_pages]

    async def _scrape_detail(self, client: httpx.AsyncClient, url: str) -> list[RawEvent]:
        response = await self._get(client, url, headers={"Accept": HTML_ACCEPT})
        soup = BeautifulSoup(response.text, "lxml")

        element = soup.find(self.scraper_config.data_selector) or soup.select_one("[data-start-time]")
        if element is not None:
            return [self.parse_data_element(element, url)]

        attachment = soup.select_one(self.scraper_config.attachment_selector)
        if attachment is not None and attachment.get("href"):
            ics_url = urljoin(url, attachment["href"])
            ics = await self._get(client, ics_url, headers={"Accept": ICAL_ACCEPT})
            content = validate_ical_payload(
                ics.text, ics_url, self.source_id, content_type=ics.headers.get("content-type")
            )
            events, errors = parse_ical_document(content, self.config.tz)
            for message in errors:
                self.logger.warning(f"{ics_url}: {message}")
            return [e.model_copy(update={"url": e.url or url}) for e in events]

        raise EventParseError(f"No event data found on {url}")

    def parse_data_element(self, element, url: str) -> RawEvent:
        """Build a RawEvent from ``data-*`` attributes."""
        title = _attr(element, "data-title")
        if not title:
            raise EventParseError(f"Missing data-title on {url}")

        start = parse_data_time(_attr(element, "data-start-time"))
        if start is None:
            raise EventParseError(f"Missing data-start-time on {url}")

        return RawEvent(
            title=title,
            description=_attr(element, "data-description") or "",
            location=_attr(element, "data-location"),
            start=start,
            end=parse_data_time(_attr(element, "data-end-time")),
            url=url,
        )

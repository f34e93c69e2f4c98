"""
Source Adapters for Event Ingestion.

Adapters provide a unified interface for fetching events from different feed types:
- iCalendar feeds (``.ics``)
- Scraped HTML listings (data attributes or linked ``.ics`` attachments)
- Events Calendar REST endpoints (paged JSON)

Usage:
    from calendar_ingest.ingestion.adapters import ICalAdapter, ICalAdapterConfig

    adapter = ICalAdapter(ICalAdapterConfig(source_id="sdma", source_name="SDMA", url=feed_url))
    async with httpx.AsyncClient() as client:
        result = await adapter.fetch(client)
"""

from .api_adapter import APIAdapter, APIAdapterConfig
from .base_adapter import AdapterConfig, BaseSourceAdapter, FetchResult, SourceType
from .ical_adapter import ICalAdapter, ICalAdapterConfig
from .scraper_adapter import ScraperAdapter, ScraperAdapterConfig

__all__ = [
    "AdapterConfig",
    "BaseSourceAdapter",
    "SourceType",
    "FetchResult",
    "APIAdapter",
    "APIAdapterConfig",
    "ICalAdapter",
    "ICalAdapterConfig",
    "ScraperAdapter",
    "ScraperAdapterConfig",
]

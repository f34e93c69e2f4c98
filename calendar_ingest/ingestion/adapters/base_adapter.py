"""
Base Source Adapter.

Abstract base class defining the interface for all feed adapters.
Implements the Strategy pattern: the pipeline only ever sees ``fetch()`` and
a ``FetchResult``, never the details of a particular site.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo

import httpx

from calendar_ingest.exceptions import FeedFetchError
from calendar_ingest.schemas.event import RawEvent


class SourceType(str, Enum):
    """Type of data source."""

    ICAL = "ical"
    SCRAPER = "scraper"
    API = "api"


@dataclass
class FetchResult:
    """
    Result of a data fetch operation.

    ``success`` is False only when the source as a whole failed; per-page or
    per-entry problems are listed in ``errors`` alongside whatever was
    recovered.
    """

    success: bool
    source_type: SourceType
    source_id: str = ""
    source_name: str = ""
    raw_data: list[RawEvent] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    metadata: dict[str, Any] = field(default_factory=dict)
    fetch_started_at: datetime | None = None
    fetch_ended_at: datetime | None = None

    @property
    def total_fetched(self) -> int:
        return len(self.raw_data)

    @property
    def duration_seconds(self) -> float:
        """Calculate fetch duration."""
        if self.fetch_started_at and self.fetch_ended_at:
            return (self.fetch_ended_at - self.fetch_started_at).total_seconds()
        return 0.0


@dataclass
class AdapterConfig:
    """
    Base configuration for source adapters.

    Extended by specific adapter types (iCal, scraper, API).
    """

    source_id: str
    source_name: str
    url: str
    source_type: SourceType = SourceType.ICAL
    category: str | None = None
    enabled: bool = True
    geo_filter: bool = True
    timezone: str = "America/Los_Angeles"
    request_timeout: float = 30.0
    max_retries: int = 1
    custom_config: dict[str, Any] = field(default_factory=dict)

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)


class BaseSourceAdapter(ABC):
    """
    Abstract base class for source adapters.

    ``fetch`` never raises: any exception escaping ``_fetch_raw`` is captured
    into a failed ``FetchResult`` and logged with the source identity, so one
    broken feed can never abort its siblings.

    Subclasses must implement:
        - _fetch_raw(): populate the FetchResult for one source
        - _validate_config(): validate adapter-specific configuration
    """

    def __init__(self, config: AdapterConfig):
        """
        Initialize the adapter.

        Args:
            config: AdapterConfig with source-specific settings
        """
        self.config = config
        self.logger = logging.getLogger(f"adapter.{config.source_id}")
        self._validate_config()

    @property
    def source_type(self) -> SourceType:
        """Get the source type."""
        return self.config.source_type

    @property
    def source_id(self) -> str:
        """Get the source identifier."""
        return self.config.source_id

    async def fetch(self, client: httpx.AsyncClient) -> FetchResult:
        """
        Fetch raw events from the source.

        Args:
            client: Shared HTTP client for this run

        Returns:
            FetchResult with raw events, errors and counters
        """
        result = FetchResult(
            success=True,
            source_type=self.source_type,
            source_id=self.source_id,
            source_name=self.config.source_name,
            fetch_started_at=datetime.now(UTC),
        )
        try:
            await self._fetch_raw(client, result)
        except Exception as e:
            self.logger.error(
                f"Fetch failed for {self.config.source_name} ({self.config.url}): {e}",
                extra={"source_id": self.source_id},
            )
            result.success = False
            result.errors.append(f"{type(e).__name__}: {e}")

        result.fetch_ended_at = datetime.now(UTC)
        result.metadata.setdefault("events_found", result.total_fetched)
        self.logger.info(
            f"Fetched {result.total_fetched} events from {self.config.source_name} "
            f"in {result.duration_seconds:.2f}s ({len(result.errors)} errors)",
            extra={"source_id": self.source_id},
        )
        return result

    @abstractmethod
    async def _fetch_raw(self, client: httpx.AsyncClient, result: FetchResult) -> None:
        """Fetch and parse the source, appending to ``result``."""

    @abstractmethod
    def _validate_config(self) -> None:
        """
        Validate adapter-specific configuration.

        Raises:
            ValueError: If configuration is invalid
        """

    async def _get(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
        retry_count: int = 0,
    ) -> httpx.Response:
        """
        GET ``url`` with the configured timeout and retry policy.

        Raises:
            FeedFetchError: On timeout, transport failure or non-2xx status
        """
        try:
            response = await client.get(
                url,
                headers=headers,
                params=params,
                timeout=self.config.request_timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
            return response
        except httpx.HTTPError as e:
            if retry_count < self.config.max_retries:
                wait_time = 2**retry_count
                self.logger.warning(f"Request to {url} failed, retrying in {wait_time}s: {e}")
                await asyncio.sleep(wait_time)
                return await self._get(client, url, headers, params, retry_count + 1)

            if isinstance(e, httpx.TimeoutException):
                message = f"Timed out after {self.config.request_timeout}s fetching {url}"
            elif isinstance(e, httpx.HTTPStatusError):
                message = f"HTTP {e.response.status_code} fetching {url}"
            else:
                message = f"Request failed for {url}: {e}"
            raise FeedFetchError(message, source_id=self.source_id, url=url) from e

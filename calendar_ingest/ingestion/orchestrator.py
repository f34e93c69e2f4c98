"""
Ingestion Orchestrator.

One call to ``run_ingestion`` is one scheduled (or manually triggered)
invocation:

    fetch (concurrent, per-source isolation)
      -> canonicalize -> geo filter -> dedup (batch, then stored rows)
      -> upsert

Nothing is kept in memory between invocations; overlapping runs are safe
because every write goes through the idempotent upsert.
"""

import asyncio
import logging
import uuid
from collections.abc import Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

import httpx

from calendar_ingest.configs.config import Config
from calendar_ingest.configs.settings import Settings, get_settings
from calendar_ingest.db import EventRepository, get_connection, rollback
from calendar_ingest.exceptions import BackendUnavailableError
from calendar_ingest.logging_config import with_context
from calendar_ingest.schemas.event import EventSchema

from .adapters import BaseSourceAdapter, FetchResult
from .canonicalizer import Canonicalizer
from .deduplication import MATCH_WINDOW, CrossSourceDeduplicator, DeduplicationStrategy, get_deduplicator
from .factory import AdapterFactory
from .geo_filter import GeoFilter
from .persist import EventDataWriter, PersistResult

logger = logging.getLogger(__name__)


@dataclass
class SourceRunSummary:
    """Per-source counters for one run."""

    source_id: str
    source_name: str
    success: bool = True
    fetched: int = 0
    canonical: int = 0
    out_of_window: int = 0
    after_filter: int = 0
    filtered_out: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass
class IngestionRunResult:
    """Structured summary returned by every ingestion invocation."""

    run_id: str
    started_at: datetime
    finished_at: datetime | None = None
    sources: dict[str, SourceRunSummary] = field(default_factory=dict)
    total_fetched: int = 0
    after_filter: int = 0
    after_dedup: int = 0
    dropped_in_batch: int = 0
    dropped_cross_source: int = 0
    written: int = 0
    failed_chunks: list[int] = field(default_factory=list)
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def processed_sources(self) -> int:
        return sum(1 for s in self.sources.values() if s.success)

    @property
    def duration_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def add_error(self, key: str, message: str) -> None:
        self.errors.setdefault(key, []).append(message)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        data["processed_sources"] = self.processed_sources
        data["duration_seconds"] = self.duration_seconds
        return data


ConnectionFactory = Callable[[], Any]


class PipelineOrchestrator:
    """
    Coordinates adapters, filters and the storage writer for one run.

    Responsibilities:
    - Fan out source fetches and collect each outcome independently
    - Canonicalize, geo-filter and deduplicate the combined batch
    - Persist through the upsert in a worker thread
    - Report everything in an IngestionRunResult
    """

    def __init__(
        self,
        adapters: list[BaseSourceAdapter],
        settings: Settings | None = None,
        geo_filter: GeoFilter | None = None,
        canonicalizer: Canonicalizer | None = None,
        connection_factory: ConnectionFactory | None = None,
        dedup_strategy: DeduplicationStrategy = DeduplicationStrategy.FUZZY,
    ):
        """Initialize the orchestrator."""
        self.settings = settings or get_settings()
        self.adapters = adapters
        self.geo_filter = geo_filter
        self.canonicalizer = canonicalizer or Canonicalizer(
            past_days=self.settings.PAST_WINDOW_DAYS,
            future_days=self.settings.FUTURE_WINDOW_DAYS,
        )
        self.connection_factory = connection_factory or (lambda: get_connection(self.settings))
        self.deduplicator = get_deduplicator(dedup_strategy)
        self.cross_source = CrossSourceDeduplicator()

    # ========================================================================
    # FETCH
    # ========================================================================

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            headers={"User-Agent": self.settings.USER_AGENT},
            timeout=self.settings.HTTP_TIMEOUT_S,
        )

    async def fetch_all(
        self,
        adapters: list[BaseSourceAdapter],
        client: httpx.AsyncClient,
    ) -> list[FetchResult]:
        """Fetch every source concurrently; one failure never cancels siblings."""
        outcomes = await asyncio.gather(*(a.fetch(client) for a in adapters), return_exceptions=True)

        results = []
        for adapter, outcome in zip(adapters, outcomes):
            if isinstance(outcome, BaseException):
                # fetch() already isolates errors; this only catches adapter bugs
                logger.error(f"Adapter {adapter.source_id} crashed: {outcome}")
                outcome = FetchResult(
                    success=False,
                    source_type=adapter.source_type,
                    source_id=adapter.source_id,
                    source_name=adapter.config.source_name,
                    errors=[f"{type(outcome).__name__}: {outcome}"],
                )
            results.append(outcome)
        return results

    # ========================================================================
    # TRANSFORM
    # ========================================================================

    def _process_source(
        self,
        adapter: BaseSourceAdapter,
        fetched: FetchResult,
        now: datetime,
        summary: SourceRunSummary,
    ) -> list[EventSchema]:
        summary.success = fetched.success
        summary.fetched = fetched.total_fetched
        summary.errors.extend(fetched.errors)

        events, stats = self.canonicalizer.canonicalize_all(fetched.raw_data, adapter.config, now)
        summary.canonical = len(events)
        summary.out_of_window = stats.out_of_window
        summary.errors.extend(stats.errors)

        if self.geo_filter is not None and adapter.config.geo_filter:
            filtered = self.geo_filter.apply(events)
            events = filtered.kept
            summary.filtered_out = filtered.filtered_out
        summary.after_filter = len(events)
        return events

    # ========================================================================
    # PERSIST
    # ========================================================================

    def _persist(self, events: list[EventSchema], result: IngestionRunResult) -> PersistResult:
        """Cross-source dedup against stored rows, then upsert. Runs in a thread."""
        conn = self.connection_factory()
        try:
            repository = EventRepository(conn)
            stored = []
            try:
                start = min(e.date for e in events) - MATCH_WINDOW
                end = max(e.date for e in events) + MATCH_WINDOW
                stored = repository.fetch_events_between(start, end)
            except Exception as e:
                rollback(conn)
                logger.warning(f"Could not load stored events for cross-source check: {e}")
                result.add_error("datastore", f"cross-source lookup skipped: {e}")

            kept, dropped = self.cross_source.filter_against_stored(events, stored)
            result.dropped_cross_source = len(dropped)
            result.after_dedup = len(kept)
            for event, row in dropped:
                logger.debug(f"Dropping {event.source}: {event.title!r}, already stored by {row.source}")

            writer = EventDataWriter(conn, batch_size=self.settings.INGEST_BATCH_SIZE)
            return writer.persist_batch(kept)
        finally:
            conn.close()

    # ========================================================================
    # END-TO-END EXECUTION
    # ========================================================================

    async def run_ingestion(
        self,
        sources: list[str] | None = None,
        now: datetime | None = None,
    ) -> IngestionRunResult:
        """
        Execute one ingestion invocation.

        Args:
            sources: Optional source ids or names to restrict the run to
            now: Reference time for the date window (defaults to now, UTC)

        Returns:
            IngestionRunResult. Only BackendUnavailableError propagates.
        """
        now = now or datetime.now(UTC)
        result = IngestionRunResult(run_id=uuid.uuid4().hex[:12], started_at=datetime.now(UTC))
        log = with_context(logger, run_id=result.run_id, stage="ingest")

        adapters = [
            a
            for a in self.adapters
            if not sources or a.source_id in sources or a.config.source_name in sources
        ]
        log.info(f"Starting ingestion for {len(adapters)} sources")

        async with self._http_client() as client:
            fetched = await self.fetch_all(adapters, client)

        batch: list[EventSchema] = []
        for adapter, fetch_result in zip(adapters, fetched):
            summary = SourceRunSummary(source_id=adapter.source_id, source_name=adapter.config.source_name)
            batch.extend(self._process_source(adapter, fetch_result, now, summary))
            result.sources[adapter.config.source_name] = summary
            if summary.errors:
                result.errors[adapter.config.source_name] = list(summary.errors)

        result.total_fetched = sum(s.fetched for s in result.sources.values())
        result.after_filter = len(batch)

        unique = self.deduplicator.deduplicate(batch)
        result.dropped_in_batch = len(batch) - len(unique)
        result.after_dedup = len(unique)

        if unique:
            try:
                persisted = await asyncio.to_thread(self._persist, unique, result)
            except BackendUnavailableError:
                log.error("Datastore unreachable, aborting run")
                raise
            result.written = persisted.written
            result.failed_chunks = persisted.failed_chunks
            for message in persisted.errors:
                result.add_error("storage", message)
        else:
            log.warning("No events left to persist")

        result.finished_at = datetime.now(UTC)
        log.info(
            f"Ingestion finished: fetched={result.total_fetched} after_filter={result.after_filter} "
            f"after_dedup={result.after_dedup} written={result.written} "
            f"failed_chunks={len(result.failed_chunks)}"
        )
        return result


def load_orchestrator_from_config(
    settings: Settings | None = None,
    config: dict | None = None,
) -> PipelineOrchestrator:
    """
    Create an orchestrator from sources.yaml.

    No hardcoded source names: adapters and the geo filter come from config.
    """
    settings = settings or get_settings()
    config = config if config is not None else Config.load_sources_config(settings=settings)

    adapters = AdapterFactory(config, settings).create_all_enabled_adapters()
    geo_filter = GeoFilter.from_config(Config.get_geo_filter_config(config))
    return PipelineOrchestrator(adapters, settings=settings, geo_filter=geo_filter)

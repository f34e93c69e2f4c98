"""
Canonicalizer.

Turns adapter output into ``EventSchema`` rows: cleans text, settles the start
time, assigns the stable id and category, and drops events outside the
actionable window.
"""

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from calendar_ingest.ingestion.adapters.base_adapter import AdapterConfig
from calendar_ingest.ingestion.identity import generate_event_id
from calendar_ingest.ingestion.normalization.text_cleaner import strip_html, strip_or_none
from calendar_ingest.ingestion.normalization.time_extractor import resolve_start_time
from calendar_ingest.schemas.event import EventSchema, ImageType, RawEvent

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Community"


@dataclass
class CanonicalizeStats:
    """Counters for one source's canonicalization pass."""

    accepted: int = 0
    out_of_window: int = 0
    missing_start: int = 0
    invalid: int = 0
    errors: list[str] = field(default_factory=list)


class Canonicalizer:
    """Maps RawEvents onto the canonical event shape."""

    def __init__(self, past_days: int = 1, future_days: int = 365):
        self.past_window = timedelta(days=past_days)
        self.future_window = timedelta(days=future_days)

    def choose_category(self, raw: RawEvent, config: AdapterConfig) -> str:
        """Source config wins, then a tag the source supplied, then the default."""
        return (
            strip_or_none(config.category)
            or strip_or_none(raw.detected_category)
            or DEFAULT_CATEGORY
        )

    def in_window(self, start: datetime, now: datetime) -> bool:
        return now - self.past_window <= start <= now + self.future_window

    def canonicalize(
        self,
        raw: RawEvent,
        config: AdapterConfig,
        now: datetime | None = None,
        stats: CanonicalizeStats | None = None,
    ) -> EventSchema | None:
        """
        Build the canonical event, or return None when it should be skipped.

        Skips (and counts in ``stats``) events with no start, events more than
        ``past_days`` old or ``future_days`` ahead, and records that fail
        schema validation.
        """
        now = now or datetime.now(UTC)
        stats = stats if stats is not None else CanonicalizeStats()

        description = strip_html(raw.description)
        start, clock = resolve_start_time(raw.start, raw.is_all_day, description, config.tz)
        if start is None:
            stats.missing_start += 1
            return None

        if not self.in_window(start, now):
            stats.out_of_window += 1
            return None

        title = strip_html(raw.title) or "Untitled Event"
        location = strip_or_none(strip_html(raw.location))
        address = strip_or_none(strip_html(raw.address)) or location

        try:
            event = EventSchema(
                id=generate_event_id(config.source_name, title, start),
                title=title,
                description=description,
                location=location,
                address=address,
                category=self.choose_category(raw, config),
                source=config.source_name,
                date=start,
                time=clock,
                end_date=raw.end,
                image_url=None,
                image_type=ImageType.GRADIENT,
                created_at=now,
            )
        except ValueError as e:
            stats.invalid += 1
            stats.errors.append(f"{raw.title!r}: {e}")
            logger.warning(f"Dropping invalid event {raw.title!r} from {config.source_name}: {e}")
            return None

        stats.accepted += 1
        return event

    def canonicalize_all(
        self,
        raws: list[RawEvent],
        config: AdapterConfig,
        now: datetime | None = None,
    ) -> tuple[list[EventSchema], CanonicalizeStats]:
        stats = CanonicalizeStats()
        events = [
            e for raw in raws if (e := self.canonicalize(raw, config, now, stats)) is not None
        ]
        if stats.out_of_window:
            logger.debug(f"{config.source_name}: {stats.out_of_window} events outside window")
        return events, stats

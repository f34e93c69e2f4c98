"""
Module for event deduplication strategies.

Two events are duplicates when either:
- (exact) normalized titles, start instants and sources are identical, or
- (fuzzy) normalized titles are equal or one contains the other, and the
  start instants are less than one hour apart.

Strategies:
- ExactMatchDeduplicator: exact rule only, used for plain re-ingestion
- FuzzyMatchDeduplicator: exact + fuzzy rule within one batch, first wins
- CrossSourceDeduplicator: drops batch events already stored by another source
"""

import bisect
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from enum import Enum
from typing import Protocol

from calendar_ingest.schemas.event import EventSchema

MATCH_WINDOW = timedelta(hours=1)
_PUNCTUATION = re.compile(r"[^\w\s]")


class EventLike(Protocol):
    """Anything carrying the three fields duplicate detection looks at."""

    title: str
    date: datetime
    source: str


class DeduplicationStrategy(str, Enum):
    """Available deduplication strategies."""

    EXACT = "exact"
    FUZZY = "fuzzy"


def normalize_title(title: str) -> str:
    """Lowercase, trim, then strip every non-word, non-space character."""
    return _PUNCTUATION.sub("", (title or "").lower().strip())


def titles_match(a: str, b: str) -> bool:
    """Equal, or one contains the other. Titles that normalize to "" match only when identical."""
    na, nb = normalize_title(a), normalize_title(b)
    if na == nb:
        return bool(na) or a == b
    if not na or not nb:
        return False
    return na in nb or nb in na


def is_exact_duplicate(a: EventLike, b: EventLike) -> bool:
    return (
        a.date == b.date
        and a.source == b.source
        and normalize_title(a.title) == normalize_title(b.title)
    )


def is_fuzzy_duplicate(a: EventLike, b: EventLike) -> bool:
    return abs(a.date - b.date) < MATCH_WINDOW and titles_match(a.title, b.title)


def is_duplicate(a: EventLike, b: EventLike) -> bool:
    return is_exact_duplicate(a, b) or is_fuzzy_duplicate(a, b)


class _TimeIndex:
    """
    Events seen so far, ordered by start instant.

    Only events less than an hour apart can be fuzzy duplicates, so lookups
    bisect to that slice instead of scanning everything seen. Insertion order
    is tracked so the earliest-added candidate is reported first.
    """

    def __init__(self):
        self._keys: list[tuple[float, int]] = []
        self._events: list[EventLike] = []

    def add(self, event: EventLike) -> None:
        key = (event.date.timestamp(), len(self._events))
        pos = bisect.bisect(self._keys, key)
        self._keys.insert(pos, key)
        self._events.insert(pos, event)

    def find_match(self, event: EventLike) -> EventLike | None:
        ts = event.date.timestamp()
        window = MATCH_WINDOW.total_seconds()
        lo = bisect.bisect_right(self._keys, (ts - window, float("inf")))
        hi = bisect.bisect_left(self._keys, (ts + window, -1))
        candidates = sorted(
            zip(self._keys[lo:hi], self._events[lo:hi]), key=lambda item: item[0][1]
        )
        for _, other in candidates:
            if is_duplicate(event, other):
                return other
        return None


class EventDeduplicator(ABC):
    """Abstract base for deduplication strategies."""

    @abstractmethod
    def deduplicate(self, events: list[EventSchema]) -> list[EventSchema]:
        """Deduplicate events and return unique set."""


class ExactMatchDeduplicator(EventDeduplicator):
    """Match by title + date + source (exact)."""

    def deduplicate(self, events: list[EventSchema]) -> list[EventSchema]:
        """
        Deduplicate events using exact matching on normalized title, date and source.

        Returns:
            List of unique events (first occurrence kept)
        """
        seen = set()
        unique_events = []

        for event in events:
            key = (normalize_title(event.title), event.date, event.source)
            if key not in seen:
                seen.add(key)
                unique_events.append(event)

        return unique_events


class FuzzyMatchDeduplicator(EventDeduplicator):
    """
    Exact and fuzzy matching within one batch.

    Events are visited in batch order and each one is kept only if no earlier
    batch entry matches it, dropped or not. An event whose only match is a
    dropped duplicate is therefore dropped too.
    """

    def deduplicate(self, events: list[EventSchema]) -> list[EventSchema]:
        index = _TimeIndex()
        unique_events = []

        for event in events:
            is_dup = index.find_match(event) is not None
            index.add(event)
            if not is_dup:
                unique_events.append(event)

        return unique_events


class CrossSourceDeduplicator:
    """
    Drop batch events that another source has already stored.

    Only stored rows from a different source are considered. Same-source
    re-ingestion is left to the upsert, which merges it onto the existing row.
    """

    def filter_against_stored(
        self,
        events: list[EventSchema],
        stored: list[EventLike],
    ) -> tuple[list[EventSchema], list[tuple[EventSchema, EventLike]]]:
        """
        Returns:
            (events to write, [(dropped event, stored row it matched), ...])
        """
        by_source: dict[str, _TimeIndex] = {}
        for row in stored:
            by_source.setdefault(row.source, _TimeIndex()).add(row)

        kept: list[EventSchema] = []
        dropped: list[tuple[EventSchema, EventLike]] = []
        for event in events:
            match = None
            for source, index in by_source.items():
                if source == event.source:
                    continue
                candidate = index.find_match(event)
                if candidate is not None and is_fuzzy_duplicate(event, candidate):
                    match = candidate
                    break
            if match is None:
                kept.append(event)
            else:
                dropped.append((event, match))

        return kept, dropped


def get_deduplicator(
    strategy: "DeduplicationStrategy | str" = DeduplicationStrategy.FUZZY,
) -> EventDeduplicator:
    """
    Create a deduplicator for the given strategy.

    Args:
        strategy: Strategy name or DeduplicationStrategy member

    Returns:
        Configured EventDeduplicator
    """
    strategy = DeduplicationStrategy(strategy)
    if strategy == DeduplicationStrategy.EXACT:
        return ExactMatchDeduplicator()
    return FuzzyMatchDeduplicator()

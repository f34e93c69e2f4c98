"""
Image backfill job.

For upcoming events without a stored image: search, download, re-host in our
own bucket, then attach. Any failure leaves the row as it was so the next run
can try again.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime

import httpx

from calendar_ingest.db import EventRepository, StoredEvent
from calendar_ingest.exceptions import ImagePipelineError
from calendar_ingest.schemas.event import ImageType

from .image_search import ImageSearchProvider, download_image
from .keywords import extract_search_keywords
from .object_store import ObjectStore

logger = logging.getLogger(__name__)

OBJECT_PREFIX = "event-images"


@dataclass
class BackfillResult:
    """Structured summary of one backfill run."""

    started_at: datetime
    finished_at: datetime | None = None
    selected: int = 0
    updated: int = 0
    skipped: int = 0
    flagged: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["started_at"] = self.started_at.isoformat()
        data["finished_at"] = self.finished_at.isoformat() if self.finished_at else None
        return data


def build_object_path(event_id: str, extension: str, now: datetime | None = None) -> str:
    """``event-images/event-<id>-<epoch ms>.<ext>``, unique per attempt."""
    now = now or datetime.now(UTC)
    return f"{OBJECT_PREFIX}/event-{event_id}-{int(now.timestamp() * 1000)}.{extension}"


class ImageBackfillJob:
    """
    Assign re-hosted images to upcoming events.

    Rows are processed one at a time with a short pause between them to stay
    well inside the search provider's rate limit.
    """

    def __init__(
        self,
        repository: EventRepository,
        store: ObjectStore,
        search: ImageSearchProvider | None,
        http_client: httpx.AsyncClient,
        limit: int = 100,
        delay_s: float = 0.2,
        download_timeout: float = 30.0,
    ):
        self.repository = repository
        self.store = store
        self.search = search
        self.http_client = http_client
        self.limit = limit
        self.delay_s = delay_s
        self.download_timeout = download_timeout

    async def run(self, today: date | None = None) -> BackfillResult:
        result = BackfillResult(started_at=datetime.now(UTC))
        today = today or result.started_at.date()

        if self.search is None:
            logger.warning("Image search is not configured; skipping backfill")
            result.errors.append("image search not configured")
            result.finished_at = datetime.now(UTC)
            return result

        try:
            rows = await asyncio.to_thread(self.repository.fetch_missing_images, today, self.limit)
        except Exception as e:
            logger.error(f"Could not select events for backfill: {e}")
            result.errors.append(f"select failed: {e}")
            result.finished_at = datetime.now(UTC)
            return result

        result.selected = len(rows)
        logger.info(f"Backfill selected {len(rows)} events from {today}")

        for i, row in enumerate(rows):
            if i and self.delay_s:
                await asyncio.sleep(self.delay_s)
            await self._process(row, result)

        result.finished_at = datetime.now(UTC)
        logger.info(
            f"Backfill finished: updated={result.updated} skipped={result.skipped} "
            f"flagged={len(result.flagged)} errors={len(result.errors)}"
        )
        return result

    async def _process(self, row: StoredEvent, result: BackfillResult) -> None:
        if row.image_type == ImageType.IMAGE.value:
            result.skipped += 1
            return
        if row.has_placeholder_image:
            logger.warning(f"Event {row.id} has placeholder data in image_url; flagged for cleanup")
            result.flagged.append(row.id)
            result.skipped += 1
            return
        if row.image_url:
            # A URL without image_type 'image' is left for manual review
            result.skipped += 1
            return

        try:
            if await self.backfill_one(row):
                result.updated += 1
            else:
                result.skipped += 1
        except Exception as e:
            logger.warning(f"Backfill failed for event {row.id} ({row.title!r}): {e}")
            result.errors.append(f"{row.id}: {e}")

    async def backfill_one(self, row: StoredEvent) -> bool:
        """
        Search, download, upload and attach an image for one row.

        Returns False on a search miss or when the row gained an image in the
        meantime; raises on pipeline failures.
        """
        query = extract_search_keywords(row.title, row.description, row.category)
        candidate = await self.search.search(query)
        if candidate is None:
            return False

        image = await download_image(self.http_client, candidate.url, self.download_timeout)
        path = build_object_path(row.id, image.extension)
        await asyncio.to_thread(self.store.upload, path, image.data, image.content_type)

        try:
            public_url = await asyncio.to_thread(self.store.public_url, path)
            if not self.store.owns(public_url):
                raise ImagePipelineError(f"Stored image URL {public_url} is outside our bucket")
            attached = await asyncio.to_thread(self.repository.set_image, row.id, public_url)
        except Exception:
            await self._discard(path)
            raise

        if not attached:
            logger.info(f"Event {row.id} changed during backfill; discarding upload")
            await self._discard(path)
            return False

        logger.debug(f"Attached {public_url} to event {row.id} (query {query!r})")
        return True

    async def _discard(self, path: str) -> None:
        try:
            await asyncio.to_thread(self.store.remove, [path])
        except Exception as e:
            logger.warning(f"Could not remove orphaned upload {path}: {e}")

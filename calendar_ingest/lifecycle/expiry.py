"""
Image expiry job.

Deletes re-hosted images for events older than the retention window and
clears the row's image fields. Gradient rows have no asset and are never
selected.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime, time, timedelta

from calendar_ingest.db import EventRepository, StoredEvent
from calendar_ingest.schemas.event import ImageType

from .object_store import ObjectStore

logger = logging.getLogger(__name__)


@dataclass
class ExpiryResult:
    """Structured summary of one expiry run."""

    started_at: datetime
    cutoff: datetime
    finished_at: datetime | None = None
    selected: int = 0
    expired: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        for key in ("started_at", "cutoff", "finished_at"):
            data[key] = data[key].isoformat() if data[key] else None
        return data


def retention_cutoff(now: datetime, retention_days: int) -> datetime:
    """Midnight UTC, ``retention_days`` before ``now``'s date."""
    day = now.astimezone(UTC).date() - timedelta(days=retention_days)
    return datetime.combine(day, time.min, tzinfo=UTC)


class ImageExpiryJob:
    """Expire stored images for past events."""

    def __init__(self, repository: EventRepository, store: ObjectStore, retention_days: int = 10):
        self.repository = repository
        self.store = store
        self.retention_days = retention_days

    async def run(self, now: datetime | None = None) -> ExpiryResult:
        now = now or datetime.now(UTC)
        cutoff = retention_cutoff(now, self.retention_days)
        result = ExpiryResult(started_at=datetime.now(UTC), cutoff=cutoff)

        try:
            rows = await asyncio.to_thread(
                self.repository.fetch_expired_images, cutoff, self.store.url_marker
            )
        except Exception as e:
            logger.error(f"Could not select events for expiry: {e}")
            result.errors.append(f"select failed: {e}")
            result.finished_at = datetime.now(UTC)
            return result

        result.selected = len(rows)
        logger.info(f"Expiry selected {len(rows)} events before {cutoff.date()}")

        for row in rows:
            try:
                if await self.expire_one(row, cutoff):
                    result.expired += 1
                else:
                    result.skipped += 1
            except Exception as e:
                logger.warning(f"Expiry failed for event {row.id}: {e}")
                result.errors.append(f"{row.id}: {e}")

        result.finished_at = datetime.now(UTC)
        logger.info(
            f"Expiry finished: expired={result.expired} skipped={result.skipped} "
            f"errors={len(result.errors)}"
        )
        return result

    async def expire_one(self, row: StoredEvent, cutoff: datetime) -> bool:
        """
        Delete the asset, then clear the row.

        If the delete raises, the row keeps its fields and is retried on the
        next run.
        """
        if row.image_type != ImageType.IMAGE.value or row.date >= cutoff:
            return False
        if not self.store.owns(row.image_url):
            return False

        path = self.store.path_from_url(row.image_url)
        await asyncio.to_thread(self.store.remove, [path])
        return await asyncio.to_thread(self.repository.clear_image, row.id, row.image_url)

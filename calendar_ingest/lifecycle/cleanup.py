"""Clear CSS gradient strings that older writers stored in ``image_url``."""

import asyncio
import logging
from dataclasses import dataclass, field

from calendar_ingest.db import EventRepository

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    selected: int = 0
    cleaned: int = 0
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"selected": self.selected, "cleaned": self.cleaned, "errors": list(self.errors)}


class PlaceholderCleanupJob:
    """
    Turn ``image_url = 'linear-gradient(...)'`` rows into proper gradient rows.

    The row ends up with ``image_url`` NULL and ``image_type`` 'gradient',
    which makes it eligible for backfill again.
    """

    def __init__(self, repository: EventRepository):
        self.repository = repository

    async def run(self) -> CleanupResult:
        result = CleanupResult()
        try:
            rows = await asyncio.to_thread(self.repository.fetch_placeholder_images)
        except Exception as e:
            logger.error(f"Could not select placeholder rows: {e}")
            result.errors.append(f"select failed: {e}")
            return result

        result.selected = len(rows)
        for row in rows:
            try:
                if await asyncio.to_thread(self.repository.clear_placeholder, row.id):
                    result.cleaned += 1
            except Exception as e:
                logger.warning(f"Cleanup failed for event {row.id}: {e}")
                result.errors.append(f"{row.id}: {e}")

        logger.info(f"Placeholder cleanup: {result.cleaned}/{result.selected} rows cleaned")
        return result

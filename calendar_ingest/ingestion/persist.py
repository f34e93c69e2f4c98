# Persistence layer for ingested events
"""
Persistence Layer for Event Ingestion.

Upserts canonical events into ``events`` keyed on
``(LOWER(TRIM(title)), date, source)``, which must be backed by a unique
expression index of the same shape.

The merge rule lives in SQL so the guarantee holds whatever the caller sends:
a stored non-empty ``image_url`` is never replaced, ``image_type`` only moves
forward from ``none``, and the community counters, ``created_at`` and ``id``
are never written on conflict.
"""

import logging
from dataclasses import dataclass, field

from psycopg2.extras import execute_values

from calendar_ingest.db import rollback
from calendar_ingest.exceptions import StorageWriteError
from calendar_ingest.schemas.event import EventSchema

logger = logging.getLogger(__name__)

INSERT_COLUMNS = (
    "id",
    "title",
    "description",
    "location",
    "address",
    "category",
    "source",
    "date",
    "time",
    "end_date",
    "image_url",
    "image_type",
    "upvotes",
    "downvotes",
    "created_at",
)

# Columns refreshed from the incoming row on conflict
UPDATE_COLUMNS = ("description", "location", "address", "category", "time", "end_date")

# Never written on conflict
PRESERVED_COLUMNS = ("id", "upvotes", "downvotes", "created_at")

_INSERT_PREFIX = f"INSERT INTO events ({', '.join(INSERT_COLUMNS)}) VALUES %s"

UPSERT_SQL = (
    _INSERT_PREFIX
    + """
    ON CONFLICT ((LOWER(TRIM(title))), date, source)
    DO UPDATE SET
        """
    + ",\n        ".join(f"{col} = EXCLUDED.{col}" for col in UPDATE_COLUMNS)
    + """,
        image_url = COALESCE(NULLIF(events.image_url, ''), NULLIF(EXCLUDED.image_url, '')),
        image_type = CASE
            WHEN NULLIF(events.image_url, '') IS NOT NULL THEN events.image_type
            WHEN events.image_type IS NULL OR events.image_type = 'none' THEN EXCLUDED.image_type
            ELSE events.image_type
        END
    """
)

INSERT_IGNORE_SQL = _INSERT_PREFIX + "\n    ON CONFLICT DO NOTHING"


@dataclass
class PersistResult:
    """Outcome of one ``persist_batch`` call."""

    written: int = 0
    chunks: int = 0
    fallback_chunks: int = 0
    failed_chunks: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed_chunks


def conflict_key(event: EventSchema) -> tuple:
    return (event.title.strip().lower(), event.date, event.source)


class EventDataWriter:
    """
    Handles persisting canonical events to PostgreSQL.

    Writes in chunks; each chunk is its own transaction so a failing chunk
    never rolls back one that already committed.
    """

    def __init__(self, db_connection, batch_size: int = 100) -> None:
        """Initialize with an active psycopg2 connection."""
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.conn = db_connection
        self.batch_size = batch_size

    def persist_batch(self, events: list[EventSchema]) -> PersistResult:
        """
        Persist ``events`` chunk by chunk.

        A chunk whose upsert fails is rolled back and retried once as a plain
        insert that skips conflicting rows. If that fails too the chunk is
        recorded in ``failed_chunks`` and the remaining chunks still run.

        Raises:
            BackendUnavailableError: The connection was lost, so no later
                chunk can be written either
        """
        result = PersistResult()
        rows = self._unique_rows(events)

        for index, start in enumerate(range(0, len(rows), self.batch_size)):
            chunk = rows[start : start + self.batch_size]
            result.chunks += 1
            try:
                result.written += self._write_chunk(UPSERT_SQL, chunk)
                continue
            except Exception as e:
                rollback(self.conn)
                logger.warning(f"Upsert failed for chunk {index} ({len(chunk)} rows), falling back: {e}")
                result.errors.append(f"chunk {index} upsert: {e}")

            try:
                result.written += self._write_chunk(INSERT_IGNORE_SQL, chunk)
                result.fallback_chunks += 1
            except Exception as e:
                rollback(self.conn)
                error = StorageWriteError(f"chunk {index} failed after fallback: {e}")
                logger.error(str(error))
                result.failed_chunks.append(index)
                result.errors.append(str(error))

        logger.info(
            f"Persisted {result.written} rows in {result.chunks} chunks "
            f"({result.fallback_chunks} via fallback, {len(result.failed_chunks)} failed)"
        )
        return result

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _unique_rows(self, events: list[EventSchema]) -> list[tuple]:
        """
        Row tuples in INSERT_COLUMNS order, one per conflict key.

        Postgres rejects an upsert that touches the same row twice in one
        statement, so later repeats of a key are dropped.
        """
        seen = set()
        rows = []
        for event in events:
            key = conflict_key(event)
            if key in seen:
                continue
            seen.add(key)
            row = event.to_row()
            rows.append(tuple(row[col] for col in INSERT_COLUMNS))
        return rows

    def _write_chunk(self, sql: str, chunk: list[tuple]) -> int:
        with self.conn.cursor() as cur:
            execute_values(cur, sql, chunk, page_size=len(chunk))
            written = cur.rowcount if cur.rowcount is not None and cur.rowcount >= 0 else len(chunk)
        self.conn.commit()
        return written

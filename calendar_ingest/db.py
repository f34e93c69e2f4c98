"""
Datastore access for the ``events`` table.

``get_connection`` opens a psycopg2 connection from settings. ``EventRepository``
is the row-select/update surface used by ingestion (cross-source lookups) and
by the image lifecycle jobs. Every update is guarded by the row's current
image state so concurrent jobs stay idempotent.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime

import psycopg2
import psycopg2.extensions
from psycopg2.extras import RealDictCursor

from calendar_ingest.configs.settings import Settings, get_settings
from calendar_ingest.exceptions import BackendUnavailableError

logger = logging.getLogger(__name__)

GRADIENT_PLACEHOLDER_PREFIX = "linear-gradient"


def get_connection(settings: Settings | None = None) -> psycopg2.extensions.connection:
    """
    Create PostgreSQL connection using DATABASE_URL.

    Returns
    -------
    psycopg2.extensions.connection
        Active database connection.

    Raises
    ------
    BackendUnavailableError
        If the database cannot be reached.
    """
    settings = settings or get_settings()
    try:
        return psycopg2.connect(**settings.get_psycopg2_params())
    except psycopg2.OperationalError as e:
        raise BackendUnavailableError(f"Cannot connect to database: {e}") from e


def rollback(conn) -> None:
    """
    Roll back the open transaction after a failed statement.

    Raises
    ------
    BackendUnavailableError
        If the connection is gone and there is nothing left to roll back.
    """
    try:
        conn.rollback()
    except (psycopg2.InterfaceError, psycopg2.OperationalError) as e:
        raise BackendUnavailableError(f"Database connection lost: {e}") from e


@dataclass
class StoredEvent:
    """The subset of a stored row the pipeline and lifecycle jobs read."""

    id: str
    title: str
    date: datetime
    source: str
    description: str | None = None
    category: str | None = None
    image_url: str | None = None
    image_type: str | None = None

    @classmethod
    def from_row(cls, row: dict) -> "StoredEvent":
        return cls(**{k: row.get(k) for k in cls.__dataclass_fields__})

    @property
    def has_placeholder_image(self) -> bool:
        """``image_url`` holds style text (or other non-URL junk) instead of a URL."""
        url = (self.image_url or "").strip()
        if not url:
            return False
        return url.startswith(GRADIENT_PLACEHOLDER_PREFIX) or not url.startswith(("http://", "https://"))


_COLUMNS = "id, title, date, source, description, category, image_url, image_type"


class EventRepository:
    """Row selects and guarded image updates on ``events``."""

    def __init__(self, db_connection) -> None:
        """Initialize with an active psycopg2 connection."""
        self.conn = db_connection

    def _select(self, query: str, params: tuple) -> list[StoredEvent]:
        with self.conn.cursor(cursor_factory=RealDictCursor) as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [StoredEvent.from_row(dict(row)) for row in rows]

    def _update(self, query: str, params: tuple) -> bool:
        try:
            with self.conn.cursor() as cur:
                cur.execute(query, params)
                updated = cur.rowcount == 1
            self.conn.commit()
            return updated
        except Exception:
            rollback(self.conn)
            raise

    # ------------------------------------------------------------------
    # Selects
    # ------------------------------------------------------------------

    def fetch_events_between(self, start: datetime, end: datetime) -> list[StoredEvent]:
        """Stored rows whose start falls in ``[start, end]``."""
        return self._select(
            f"SELECT {_COLUMNS} FROM events WHERE date >= %s AND date <= %s",
            (start, end),
        )

    def fetch_missing_images(self, today: date, limit: int = 100) -> list[StoredEvent]:
        """Upcoming rows without a stored image, soonest first."""
        return self._select(
            f"""
            SELECT {_COLUMNS} FROM events
            WHERE date >= %s
              AND (image_type IS NULL OR image_type <> 'image')
            ORDER BY date ASC
            LIMIT %s
            """,
            (today, limit),
        )

    def fetch_expired_images(self, cutoff: datetime, storage_marker: str) -> list[StoredEvent]:
        """Rows before ``cutoff`` holding an image in our own storage."""
        return self._select(
            f"""
            SELECT {_COLUMNS} FROM events
            WHERE date < %s
              AND image_type = 'image'
              AND image_url LIKE %s
            ORDER BY date ASC
            """,
            (cutoff, f"%{storage_marker}%"),
        )

    def fetch_placeholder_images(self) -> list[StoredEvent]:
        """Rows whose image_url holds a CSS gradient string."""
        return self._select(
            f"SELECT {_COLUMNS} FROM events WHERE image_url LIKE %s",
            (f"{GRADIENT_PLACEHOLDER_PREFIX}%",),
        )

    # ------------------------------------------------------------------
    # Guarded updates
    # ------------------------------------------------------------------

    def set_image(self, event_id: str, image_url: str) -> bool:
        """
        Attach a stored image. No-op (returns False) if the row already has
        an image or any non-empty image_url by the time the update runs.
        """
        return self._update(
            """
            UPDATE events
            SET image_url = %s, image_type = 'image'
            WHERE id = %s
              AND image_type IS DISTINCT FROM 'image'
              AND NULLIF(image_url, '') IS NULL
            """,
            (image_url, event_id),
        )

    def clear_image(self, event_id: str, expected_url: str) -> bool:
        """Clear an expired image, only if the row still points at ``expected_url``."""
        return self._update(
            """
            UPDATE events
            SET image_url = NULL, image_type = 'none'
            WHERE id = %s AND image_url = %s AND image_type = 'image'
            """,
            (event_id, expected_url),
        )

    def clear_placeholder(self, event_id: str) -> bool:
        """Replace a CSS gradient string with the structured gradient marker."""
        return self._update(
            """
            UPDATE events
            SET image_url = NULL, image_type = 'gradient'
            WHERE id = %s AND image_url LIKE %s
            """,
            (event_id, f"{GRADIENT_PLACEHOLDER_PREFIX}%"),
        )

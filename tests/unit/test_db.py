"""Unit tests for the datastore repository."""

from datetime import date, datetime, timezone
from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from calendar_ingest.db import EventRepository, StoredEvent, get_connection, rollback
from calendar_ingest.exceptions import BackendUnavailableError

START = datetime(2025, 10, 18, 18, 0, tzinfo=timezone.utc)


@pytest.fixture
def conn():
    return MagicMock()


def _cursor(conn, rows=None):
    cur = conn.cursor.return_value.__enter__.return_value
    cur.fetchall.return_value = rows or []
    return cur


class TestGetConnection:
    """Tests for get_connection."""

    def test_connects_with_parsed_url(self, settings):
        """Should pass the parsed DATABASE_URL to psycopg2."""
        with patch("calendar_ingest.db.psycopg2.connect") as connect:
            get_connection(settings)
        connect.assert_called_once_with(**settings.get_psycopg2_params())

    def test_unreachable(self, settings):
        """Should translate connection failures to BackendUnavailableError."""
        with patch("calendar_ingest.db.psycopg2.connect", side_effect=psycopg2.OperationalError("refused")):
            with pytest.raises(BackendUnavailableError):
                get_connection(settings)


class TestStoredEvent:
    """Tests for StoredEvent."""

    def test_from_row_ignores_extra_columns(self):
        """Should pick only the fields it declares."""
        row = {"id": "e1", "title": "Tour", "date": START, "source": "SDMA", "upvotes": 4}
        event = StoredEvent.from_row(row)
        assert event.id == "e1"
        assert event.image_url is None

    @pytest.mark.parametrize(
        "url,expected",
        [
            (None, False),
            ("", False),
            ("https://proj.supabase.co/storage/v1/object/public/event-images/a.jpg", False),
            ("linear-gradient(135deg, #f00, #00f)", True),
            ("#ff8800", True),
        ],
    )
    def test_has_placeholder_image(self, url, expected):
        """Should flag style strings and other non-URL values."""
        event = StoredEvent(id="e1", title="Tour", date=START, source="SDMA", image_url=url)
        assert event.has_placeholder_image is expected


class TestEventRepository:
    """Tests for EventRepository."""

    def test_fetch_events_between(self, conn):
        """Should select rows in the window and map them."""
        cur = _cursor(conn, [{"id": "e1", "title": "Tour", "date": START, "source": "SDMA"}])
        rows = EventRepository(conn).fetch_events_between(START, START)

        assert rows == [StoredEvent(id="e1", title="Tour", date=START, source="SDMA")]
        assert cur.execute.call_args.args[1] == (START, START)

    def test_fetch_missing_images_query(self, conn):
        """Should select non-image upcoming rows, soonest first, limited."""
        cur = _cursor(conn)
        EventRepository(conn).fetch_missing_images(date(2025, 10, 15), limit=25)

        sql, params = cur.execute.call_args.args
        assert "image_type <> 'image'" in sql
        assert "ORDER BY date ASC" in sql
        assert params == (date(2025, 10, 15), 25)

    def test_fetch_expired_images_query(self, conn):
        """Should match only image rows in our storage before the cutoff."""
        cur = _cursor(conn)
        EventRepository(conn).fetch_expired_images(START, "supabase.co/storage")

        sql, params = cur.execute.call_args.args
        assert "image_type = 'image'" in sql
        assert params == (START, "%supabase.co/storage%")

    def test_set_image_guarded(self, conn):
        """Should only update rows without an image and commit."""
        cur = _cursor(conn)
        cur.rowcount = 1

        assert EventRepository(conn).set_image("e1", "https://x/a.jpg") is True
        sql = cur.execute.call_args.args[0]
        assert "image_type IS DISTINCT FROM 'image'" in sql
        assert "NULLIF(image_url, '') IS NULL" in sql
        conn.commit.assert_called_once()

    def test_guard_miss_returns_false(self, conn):
        """Should report False when the guard matched nothing."""
        _cursor(conn).rowcount = 0
        assert EventRepository(conn).clear_image("e1", "https://x/a.jpg") is False

    def test_update_failure_rolls_back(self, conn):
        """Should roll back and re-raise on a failed update."""
        _cursor(conn).execute.side_effect = psycopg2.DatabaseError("deadlock")
        with pytest.raises(psycopg2.DatabaseError):
            EventRepository(conn).clear_placeholder("e1")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()

    def test_lost_connection_on_update(self, conn):
        """Should report a dropped connection as the backend being unavailable."""
        _cursor(conn).execute.side_effect = psycopg2.OperationalError("server closed the connection")
        conn.rollback.side_effect = psycopg2.InterfaceError("connection already closed")
        with pytest.raises(BackendUnavailableError):
            EventRepository(conn).set_image("e1", "https://x/a.jpg")


class TestRollback:
    """Tests for the rollback helper."""

    def test_rolls_back(self, conn):
        """Should roll back an open connection."""
        rollback(conn)
        conn.rollback.assert_called_once()

    @pytest.mark.parametrize(
        "error",
        [psycopg2.InterfaceError("connection already closed"), psycopg2.OperationalError("SSL SYSCALL error")],
    )
    def test_closed_connection(self, conn, error):
        """Should raise BackendUnavailableError when the connection is gone."""
        conn.rollback.side_effect = error
        with pytest.raises(BackendUnavailableError, match="connection lost"):
            rollback(conn)

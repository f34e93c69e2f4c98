"""Unit tests for the object store URL helpers and Supabase implementation."""

from unittest.mock import MagicMock, patch

import pytest

from calendar_ingest.configs.settings import Settings
from calendar_ingest.exceptions import BackendUnavailableError
from calendar_ingest.lifecycle.object_store import CACHE_CONTROL_SECONDS, SupabaseObjectStore

PUBLIC = "https://proj.supabase.co/storage/v1/object/public"


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def store(client):
    return SupabaseObjectStore(client, "event-images")


class TestUrlHelpers:
    """Tests for owns and path_from_url."""

    def test_path_from_public_url(self, store):
        """Should return the path after the bucket segment."""
        url = f"{PUBLIC}/event-images/event-images/event-1-1700000000000.jpg?t=1"
        assert store.path_from_url(url) == "event-images/event-1-1700000000000.jpg"

    def test_other_bucket(self, store):
        """Should not claim objects in another bucket."""
        url = f"{PUBLIC}/avatars/user-1.png"
        assert store.path_from_url(url) is None
        assert store.owns(url) is False

    def test_owns(self, store):
        """Should only own http URLs into our bucket."""
        assert store.owns(f"{PUBLIC}/event-images/a.jpg") is True
        assert store.owns("https://images.unsplash.com/photo-1") is False
        assert store.owns("linear-gradient(135deg, #f00, #00f)") is False
        assert store.owns(None) is False


class TestSupabaseObjectStore:
    """Tests for the Supabase-backed store."""

    def test_upload_options(self, store, client):
        """Should upload with content type, long cache and no overwrite."""
        store.upload("event-images/a.jpg", b"data", "image/jpeg")

        client.storage.from_.assert_called_with("event-images")
        client.storage.from_.return_value.upload.assert_called_once_with(
            "event-images/a.jpg",
            b"data",
            {"content-type": "image/jpeg", "cache-control": str(CACHE_CONTROL_SECONDS), "upsert": "false"},
        )

    def test_public_url_strips_trailing_question_mark(self, store, client):
        """Should normalize the URL returned by the client."""
        client.storage.from_.return_value.get_public_url.return_value = f"{PUBLIC}/event-images/a.jpg?"
        assert store.public_url("a.jpg") == f"{PUBLIC}/event-images/a.jpg"

    def test_remove(self, store, client):
        """Should delete by path and skip empty lists."""
        store.remove([])
        client.storage.from_.return_value.remove.assert_not_called()
        store.remove(["a.jpg"])
        client.storage.from_.return_value.remove.assert_called_once_with(["a.jpg"])

    def test_from_settings_requires_credentials(self, settings):
        """Should refuse to build without storage credentials."""
        with pytest.raises(BackendUnavailableError):
            SupabaseObjectStore.from_settings(settings)

    def test_from_settings(self):
        """Should create a client from the configured URL and key."""
        s = Settings(
            DATABASE_URL="postgresql://u:p@h:5432/d",
            SUPABASE_URL="https://proj.supabase.co",
            SUPABASE_SERVICE_ROLE_KEY="service-key",
            IMAGE_BUCKET="images",
            _env_file=None,
        )
        with patch("supabase.create_client") as create_client:
            store = SupabaseObjectStore.from_settings(s)

        create_client.assert_called_once_with("https://proj.supabase.co", "service-key")
        assert store.bucket == "images"
        assert store.client is create_client.return_value

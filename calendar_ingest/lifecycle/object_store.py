"""
Object storage for re-hosted event images.

``ObjectStore`` is the upload / public-URL / delete-by-path surface the image
jobs need. ``SupabaseObjectStore`` implements it on Supabase Storage. The
supabase client is synchronous, so async callers go through
``asyncio.to_thread``.
"""

import logging
import re
from abc import ABC, abstractmethod

from calendar_ingest.configs.settings import Settings
from calendar_ingest.exceptions import BackendUnavailableError

logger = logging.getLogger(__name__)

CACHE_CONTROL_SECONDS = 31536000
_PUBLIC_PATH_RE = re.compile(r"/storage/v1/object/public/([^/]+)/(.+)$")


class ObjectStore(ABC):
    """Bucket-scoped object storage."""

    def __init__(self, bucket: str, url_marker: str):
        self.bucket = bucket
        self.url_marker = url_marker

    @abstractmethod
    def upload(self, path: str, data: bytes, content_type: str) -> None:
        """Store ``data`` at ``path``. Must not overwrite an existing object."""

    @abstractmethod
    def public_url(self, path: str) -> str:
        """Public URL for ``path``."""

    @abstractmethod
    def remove(self, paths: list[str]) -> None:
        """Delete objects; missing paths are not an error."""

    def owns(self, url: str | None) -> bool:
        """True when ``url`` points into this store's bucket."""
        if not url or not url.startswith(("http://", "https://")):
            return False
        return self.url_marker in url and self.path_from_url(url) is not None

    def path_from_url(self, url: str) -> str | None:
        """
        Recover the object path inside the bucket from a public URL.

        ``https://x.supabase.co/storage/v1/object/public/event-images/a/b.jpg``
        yields ``a/b.jpg``.
        """
        clean = url.split("?", 1)[0].split("#", 1)[0]
        match = _PUBLIC_PATH_RE.search(clean)
        if match:
            bucket, path = match.groups()
            return path if bucket == self.bucket else None

        # Older rows were written with URLs that only carry the bucket segment
        fallback = re.search(rf"/{re.escape(self.bucket)}/(.+)$", clean)
        return fallback.group(1) if fallback else None


class SupabaseObjectStore(ObjectStore):
    """ObjectStore on Supabase Storage."""

    def __init__(self, client, bucket: str, url_marker: str = "supabase.co/storage"):
        super().__init__(bucket, url_marker)
        self.client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "SupabaseObjectStore":
        """
        Raises:
            BackendUnavailableError: Storage credentials are missing or rejected
        """
        if not settings.storage_enabled:
            raise BackendUnavailableError("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY are not set")

        from supabase import create_client

        try:
            client = create_client(
                settings.SUPABASE_URL,
                settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
            )
        except Exception as e:
            raise BackendUnavailableError(f"Cannot create storage client: {e}") from e
        return cls(client, settings.IMAGE_BUCKET, settings.STORAGE_URL_MARKER)

    def _bucket(self):
        return self.client.storage.from_(self.bucket)

    def upload(self, path: str, data: bytes, content_type: str) -> None:
        self._bucket().upload(
            path,
            data,
            {
                "content-type": content_type,
                "cache-control": str(CACHE_CONTROL_SECONDS),
                "upsert": "false",
            },
        )
        logger.debug(f"Uploaded {len(data)} bytes to {self.bucket}/{path}")

    def public_url(self, path: str) -> str:
        # Some storage client versions append a bare "?"
        return self._bucket().get_public_url(path).rstrip("?")

    def remove(self, paths: list[str]) -> None:
        if paths:
            self._bucket().remove(paths)
            logger.debug(f"Removed {len(paths)} objects from {self.bucket}")

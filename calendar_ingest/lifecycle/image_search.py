"""
Image search and download.

The provider only ever suggests a candidate; its URL is downloaded and
re-hosted, never stored.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePosixPath
from urllib.parse import parse_qs, urlparse

import httpx

from calendar_ingest.exceptions import ImagePipelineError

logger = logging.getLogger(__name__)

MAX_IMAGE_BYTES = 10 * 1024 * 1024

_CONTENT_TYPE_EXTENSIONS = {
    "image/png": "png",
    "image/webp": "webp",
    "image/gif": "gif",
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
}
_KNOWN_EXTENSIONS = {"png", "webp", "gif", "jpg", "jpeg"}


@dataclass
class ImageCandidate:
    """A provider search hit."""

    url: str
    provider_id: str | None = None
    description: str | None = None


@dataclass
class DownloadedImage:
    data: bytes
    content_type: str
    extension: str


def image_extension(content_type: str | None, url: str = "") -> str:
    """
    File extension for an image: Content-Type first, then the URL, else ``jpg``.

    Image CDNs often encode the format as a query parameter (``fm=webp``),
    which is checked before the path suffix.
    """
    mime = (content_type or "").split(";", 1)[0].strip().lower()
    if mime in _CONTENT_TYPE_EXTENSIONS:
        return _CONTENT_TYPE_EXTENSIONS[mime]

    parsed = urlparse(url or "")
    fmt = (parse_qs(parsed.query).get("fm") or [""])[0].lower()
    suffix = PurePosixPath(parsed.path).suffix.lstrip(".").lower()
    for candidate in (fmt, suffix):
        if candidate in _KNOWN_EXTENSIONS:
            return "jpg" if candidate == "jpeg" else candidate
    return "jpg"


class ImageSearchProvider(ABC):
    """Finds one suitable image for a search term."""

    @abstractmethod
    async def search(self, query: str) -> ImageCandidate | None:
        """Return the best candidate, or None on a miss."""


class UnsplashImageSearch(ImageSearchProvider):
    """Unsplash ``/search/photos``, landscape, strict content filter."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        access_key: str,
        base_url: str = "https://api.unsplash.com",
        timeout: float = 30.0,
    ):
        if not access_key:
            raise ValueError("Unsplash access key is required")
        self.client = client
        self.access_key = access_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    async def search(self, query: str) -> ImageCandidate | None:
        """
        Raises:
            ImagePipelineError: The provider call failed (not a plain miss)
        """
        try:
            response = await self.client.get(
                f"{self.base_url}/search/photos",
                params={
                    "query": query,
                    "orientation": "landscape",
                    "per_page": 1,
                    "content_filter": "high",
                },
                headers={
                    "Authorization": f"Client-ID {self.access_key}",
                    "Accept-Version": "v1",
                },
                timeout=self.timeout,
            )
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ImagePipelineError(f"Image search for {query!r} failed: {e}") from e

        results = payload.get("results") or []
        if not results:
            logger.info(f"No image found for {query!r}")
            return None

        hit = results[0]
        url = (hit.get("urls") or {}).get("regular")
        if not url:
            return None
        return ImageCandidate(url=url, provider_id=hit.get("id"), description=hit.get("alt_description"))


async def download_image(client: httpx.AsyncClient, url: str, timeout: float = 30.0) -> DownloadedImage:
    """
    Fetch image bytes.

    Raises:
        ImagePipelineError: Transport failure, non-2xx, non-image or oversized body
    """
    try:
        response = await client.get(url, timeout=timeout, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        raise ImagePipelineError(f"Download failed for {url}: {e}") from e

    content_type = response.headers.get("content-type", "")
    if content_type and not content_type.lower().startswith("image/"):
        raise ImagePipelineError(f"Unexpected content type {content_type!r} from {url}")

    data = response.content
    if not data:
        raise ImagePipelineError(f"Empty image body from {url}")
    if len(data) > MAX_IMAGE_BYTES:
        raise ImagePipelineError(f"Image from {url} is too large ({len(data)} bytes)")

    mime = content_type.split(";", 1)[0].strip() or "image/jpeg"
    return DownloadedImage(data=data, content_type=mime, extension=image_extension(content_type, url))

"""Image lifecycle jobs: backfill, expiry and placeholder cleanup."""

from .backfill import BackfillResult, ImageBackfillJob
from .cleanup import CleanupResult, PlaceholderCleanupJob
from .expiry import ExpiryResult, ImageExpiryJob

__all__ = [
    "BackfillResult",
    "ImageBackfillJob",
    "CleanupResult",
    "PlaceholderCleanupJob",
    "ExpiryResult",
    "ImageExpiryJob",
]

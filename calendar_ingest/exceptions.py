"""
Exception taxonomy for the calendar ingestion service.

Only BackendUnavailableError is fatal to a scheduled invocation. Every other
error is isolated to the feed, page, entry, chunk or image row that raised it
and reported through the run result.
"""


class CalendarIngestError(Exception):
    """Base class for all service errors."""


class FeedFetchError(CalendarIngestError):
    """A feed or page could not be fetched (timeout, non-2xx, bad payload)."""

    def __init__(self, message: str, source_id: str | None = None, url: str | None = None):
        super().__init__(message)
        self.source_id = source_id
        self.url = url


class WrongContentTypeError(FeedFetchError):
    """The endpoint answered with an HTML page instead of a calendar document."""


class InvalidFeedError(FeedFetchError):
    """The payload is not a usable calendar document."""


class EventParseError(CalendarIngestError):
    """A single entry inside an otherwise valid feed is malformed."""


class StorageWriteError(CalendarIngestError):
    """A chunk could not be written by either the upsert or the fallback insert."""


class ImagePipelineError(CalendarIngestError):
    """Image search, download or upload failed for one row."""


class BackendUnavailableError(CalendarIngestError):
    """The datastore or object storage cannot be reached at all."""

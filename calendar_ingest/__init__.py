"""Community calendar ingestion and image lifecycle jobs."""

__version__ = "0.1.0"

"""Event ingestion: fetch, canonicalize, filter, deduplicate and persist."""

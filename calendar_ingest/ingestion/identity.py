"""
Deterministic event identity.

An event id is a UUIDv5 over ``source | normalized title | UTC start``. The
same logical event therefore maps to the same row on every run, in every
process, which is what keeps attached images attached across re-ingestion.
"""

import uuid
from datetime import datetime, timezone

# Fixed namespace for all event ids; changing it re-keys every stored row.
EVENT_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "events.community-calendar")


def normalize_title_for_id(title: str) -> str:
    """Lowercase and trim, mirroring the ``lower(btrim(title))`` conflict key."""
    return (title or "").strip().lower()


def generate_event_id(source: str, title: str, date: datetime) -> str:
    """
    Return the stable id for ``(source, title, date)``.

    Parameters
    ----------
    source : str
        Source name as stored in the ``source`` column.
    title : str
        Raw event title; normalized before hashing.
    date : datetime
        Timezone-aware start instant. Different zones describing the same
        instant produce the same id.
    """
    if date.tzinfo is None:
        raise ValueError("event date must be timezone-aware")

    instant = date.astimezone(timezone.utc).replace(microsecond=0).isoformat()
    seed = f"{source.strip()}|{normalize_title_for_id(title)}|{instant}"
    return str(uuid.uuid5(EVENT_NAMESPACE, seed))

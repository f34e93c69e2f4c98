"""
Canonical Event Schema for the community calendar.

Adapters produce ``RawEvent`` records; the canonicalizer turns them into
``EventSchema`` rows, which is the shape persisted in the ``events`` table.
"""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


# ============================================================================
# ENUMS
# ============================================================================


class ImageType(str, Enum):
    """
    How an event is illustrated.

    GRADIENT is a content-derived fallback rendered by the front end. It never
    carries an ``image_url``; only IMAGE rows point at a stored asset.
    """

    NONE = "none"
    GRADIENT = "gradient"
    IMAGE = "image"


# ============================================================================
# RAW ADAPTER OUTPUT
# ============================================================================


class RawEvent(BaseModel):
    """An event as captured by a source adapter, before normalization."""

    model_config = ConfigDict(extra="ignore")

    title: str = "Untitled Event"
    description: Optional[str] = None
    location: Optional[str] = None
    address: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    is_all_day: bool = False
    uid: Optional[str] = None
    url: Optional[str] = None
    detected_category: Optional[str] = None


# ============================================================================
# CANONICAL EVENT
# ============================================================================


class EventSchema(BaseModel):
    """The persisted event row."""

    model_config = ConfigDict(use_enum_values=False)

    id: str
    title: str = Field(..., min_length=1)
    description: str = ""
    location: Optional[str] = None
    address: Optional[str] = None
    category: str = "Community"
    source: str = Field(..., min_length=1)
    date: datetime
    time: Optional[str] = None
    end_date: Optional[datetime] = None
    image_url: Optional[str] = None
    image_type: ImageType = ImageType.NONE
    upvotes: int = 0
    downvotes: int = 0
    created_at: datetime = Field(default_factory=_utc_now)

    @field_validator("date", "end_date")
    @classmethod
    def require_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Naive datetimes are ambiguous across sources; reject them."""
        if v is not None and v.tzinfo is None:
            raise ValueError("datetime must be timezone-aware")
        return v

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _TIME_RE.match(v):
            raise ValueError(f"time must be HH:MM (24-hour), got {v!r}")
        return v

    @model_validator(mode="after")
    def validate_image_fields(self) -> "EventSchema":
        """An IMAGE row needs a URL; a GRADIENT row must not have one."""
        if self.image_type == ImageType.IMAGE and not self.image_url:
            raise ValueError("image_type 'image' requires image_url")
        if self.image_type == ImageType.GRADIENT and self.image_url:
            raise ValueError("image_type 'gradient' must not carry image_url")
        return self

    def to_row(self) -> dict[str, Any]:
        """Column mapping used by the storage writer."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "location": self.location,
            "address": self.address,
            "category": self.category,
            "source": self.source,
            "date": self.date,
            "time": self.time,
            "end_date": self.end_date,
            "image_url": self.image_url,
            "image_type": self.image_type.value,
            "upvotes": self.upvotes,
            "downvotes": self.downvotes,
            "created_at": self.created_at,
        }

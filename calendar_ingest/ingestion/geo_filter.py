"""
Geographic filter.

Keeps events whose postal code falls inside the service-area allow-list. The
code is read from ``location`` first and ``address`` second; events with no
readable code follow an explicit, configurable policy.
"""

import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from calendar_ingest.schemas.event import EventSchema

logger = logging.getLogger(__name__)

# US ZIP with optional +4 extension
POSTAL_CODE_PATTERN = re.compile(r"\b(\d{5})(?:-\d{4})?\b")

# Roughly a 20-minute drive around Bonita / Chula Vista
DEFAULT_ALLOWED_POSTAL_CODES = frozenset(
    {
        "91902", "91908", "91909", "91910", "91911", "91912", "91913", "91914",
        "91915", "91921", "91950", "91951", "91932", "91933", "92118", "92173",
        "92154", "92139", "92113", "92102", "92101", "91945", "91977", "91978",
        "91941", "91942",
    }
)


class UnresolvedPolicy(str, Enum):
    """What to do with an event whose postal code cannot be read."""

    DROP = "drop"
    KEEP = "keep"


@dataclass
class GeoFilterResult:
    kept: list[EventSchema]
    filtered_out: int = 0
    unresolved: int = 0


def extract_postal_code(text: str | None) -> str | None:
    """
    Return the last 5-digit ZIP in ``text``.

    The last match is used because street numbers come before the ZIP in a
    US address ("12345 Main St, Bonita, CA 91902").
    """
    if not text:
        return None
    matches = POSTAL_CODE_PATTERN.findall(text)
    return matches[-1] if matches else None


class GeoFilter:
    """Postal-code allow-list filter."""

    def __init__(
        self,
        allowed_codes: Iterable[str] | None = None,
        unresolved_policy: UnresolvedPolicy | str = UnresolvedPolicy.DROP,
    ):
        codes = DEFAULT_ALLOWED_POSTAL_CODES if allowed_codes is None else allowed_codes
        self.allowed_codes = frozenset(str(c).strip() for c in codes)
        self.unresolved_policy = UnresolvedPolicy(unresolved_policy)

    @classmethod
    def from_config(cls, config: dict) -> "GeoFilter | None":
        """Build from the ``geo_filter`` YAML section; None when disabled."""
        if not config.get("enabled", True):
            return None
        return cls(
            allowed_codes=config.get("allowed_postal_codes"),
            unresolved_policy=config.get("unresolved_policy", UnresolvedPolicy.DROP),
        )

    def resolve(self, event: EventSchema) -> str | None:
        return extract_postal_code(event.location) or extract_postal_code(event.address)

    def is_allowed(self, event: EventSchema) -> bool | None:
        """True/False for a resolved code, None when no code was found."""
        code = self.resolve(event)
        if code is None:
            return None
        return code in self.allowed_codes

    def apply(self, events: list[EventSchema]) -> GeoFilterResult:
        result = GeoFilterResult(kept=[])
        for event in events:
            allowed = self.is_allowed(event)
            if allowed is None:
                result.unresolved += 1
                if self.unresolved_policy is UnresolvedPolicy.KEEP:
                    result.kept.append(event)
                else:
                    result.filtered_out += 1
                continue
            if allowed:
                result.kept.append(event)
            else:
                result.filtered_out += 1

        logger.debug(
            f"Geo filter kept {len(result.kept)}/{len(events)} "
            f"({result.unresolved} without a postal code)"
        )
        return result

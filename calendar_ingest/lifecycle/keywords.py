"""Search keywords for image backfill, derived from event content."""

import re

# Checked in order; the first one found in the event text wins
SEARCH_KEYWORDS = (
    "workshop",
    "art",
    "music",
    "kids",
    "ceramics",
    "drawing",
    "theater",
    "book",
    "community",
    "festival",
    "market",
    "dance",
    "yoga",
    "fitness",
    "food",
    "cooking",
    "garden",
)

DEFAULT_KEYWORD = "community"

_KEYWORD_PATTERNS = [(kw, re.compile(rf"\b{kw}")) for kw in SEARCH_KEYWORDS]
_WORD_RE = re.compile(r"[^\W\d_]{3,}")


def extract_search_keywords(
    title: str | None,
    description: str | None = None,
    category: str | None = None,
) -> str:
    """
    Pick one search term for an event.

    A listed keyword at the start of a word in title, description or category
    comes first (so "Arts" and "artist" count as "art", "party" does not).
    Otherwise a non-generic category, then the first real word of the title.
    """
    text = " ".join(p for p in (title, description, category) if p).lower()
    for keyword, pattern in _KEYWORD_PATTERNS:
        if pattern.search(text):
            return keyword

    cat = (category or "").strip().lower()
    if cat and cat != DEFAULT_KEYWORD:
        return cat

    words = _WORD_RE.findall((title or "").lower())
    return words[0] if words else DEFAULT_KEYWORD

"""Markup stripping for descriptions and titles."""

import re
import warnings
from typing import Any, Optional

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning

_WS = re.compile(r"\s+")
_MARKUP_HINT = re.compile(r"[<&]")


def normalize_ws(text: str) -> str:
    return _WS.sub(" ", (text or "").strip())


def strip_or_none(x: Any) -> Optional[str]:
    if x is None:
        return None
    s = normalize_ws(str(x))
    return s if s else None


def strip_html(text: Optional[str]) -> str:
    """
    Remove tags and decode entities, returning single-spaced plain text.

    Handles ``&nbsp;``, ``&amp;``, typographic entities such as ``&#8217;``
    and anything else the HTML5 entity table knows about.
    """
    if not text:
        return ""
    if not _MARKUP_HINT.search(text):
        return normalize_ws(text)

    with warnings.catch_warnings():
        # Short descriptions that look like a URL or path trip a bs4 warning
        warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
        soup = BeautifulSoup(text, "lxml")

    for t in soup(["script", "style", "noscript"]):
        t.decompose()
    return normalize_ws(soup.get_text(" "))

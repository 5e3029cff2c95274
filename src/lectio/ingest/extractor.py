"""HTML → plain text extraction and change-detection hashing."""

from __future__ import annotations

import hashlib
import re

from bs4 import BeautifulSoup

_STRIP_TAGS = ["script", "style", "noscript", "template", "nav", "footer", "head"]
_WS_RE = re.compile(r"\s+")


def extract_text(html: str) -> str:
    """Return the visible text of *html* with whitespace collapsed to single spaces.

    Script, style and navigation chrome are dropped; entities are decoded.
    """
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup.find_all(_STRIP_TAGS):
        tag.decompose()
    return _WS_RE.sub(" ", soup.get_text(" ")).strip()


def content_hash(raw: str) -> str:
    """SHA-256 hex digest of the raw page, used to skip unchanged re-fetches."""
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()

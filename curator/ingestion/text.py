"""Text helpers shared by the feed parser and the content normalizer."""

import hashlib
import html
import re

from bs4 import BeautifulSoup

_CDATA_PATTERN = re.compile(r"<!\[CDATA\[(.*?)\]\]>", re.DOTALL)
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def strip_cdata(text: str) -> str:
    """Unwrap any <![CDATA[...]]> sections, keeping their content."""
    return _CDATA_PATTERN.sub(r"\1", text)


def clean_text(text: str | None) -> str:
    """
    Reduce feed or post markup to a single line of plain text.

    Unwraps CDATA, drops HTML tags, decodes entities (including &nbsp;),
    removes control characters and collapses whitespace runs.

    Args:
        text: Raw text, possibly containing markup

    Returns:
        Cleaned text, or "" for empty input
    """
    if not text:
        return ""

    text = strip_cdata(text)

    if "<" in text:
        soup = BeautifulSoup(text, "html.parser")
        for element in soup(["script", "style"]):
            element.decompose()
        text = soup.get_text(separator=" ")

    text = html.unescape(text)
    text = _CONTROL_CHARS.sub("", text)

    # str.split() also splits on the non-breaking spaces left by &nbsp;
    return " ".join(text.split())


def stable_hash(value: str) -> str:
    """
    Generate a stable, deterministic hash from a string.

    Uses SHA256 truncated to 16 hex characters. Unlike Python's built-in
    hash(), this is deterministic across process restarts.

    Args:
        value: String to hash

    Returns:
        16-character hex string
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]

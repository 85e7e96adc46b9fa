"""Text utility functions for the notelens search engine."""

import re
import unicodedata
from typing import List, NamedTuple, Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_BRACKET_LINK = re.compile(r"\[\[([^\[\]]+)\]\]")


class BracketLink(NamedTuple):
    """A complete ``[[reference]]`` found in note text."""

    text: str
    slug: str
    start: int
    end: int


def slugify(text: str) -> str:
    """Normalize a note title into a URL-friendly slug.

    Rules:
    - Unicode NFC normalization
    - Lowercase
    - Any run of non-alphanumeric characters becomes a single hyphen
    - Leading and trailing hyphens are trimmed

    Examples:
        "Project Alpha: Kickoff!" -> "project-alpha-kickoff"
        "  --hello--  " -> "hello"

    Args:
        text: The title to slugify.

    Returns:
        The slug, or an empty string for empty input.
    """
    if not text:
        return ""
    normalized = unicodedata.normalize("NFC", text).lower()
    return _NON_ALNUM.sub("-", normalized).strip("-")


def normalize_query(text: Optional[str]) -> str:
    """Lower-case and trim a query so equivalent queries share a cache key."""
    if not text:
        return ""
    return text.strip().lower()


def extract_bracket_links(text: str) -> List[BracketLink]:
    """Find every complete ``[[...]]`` reference in the text.

    Empty references (``[[  ]]``) are skipped.
    """
    results: List[BracketLink] = []
    if not text:
        return results
    for match in _BRACKET_LINK.finditer(text):
        raw = match.group(1).strip()
        if not raw:
            continue
        results.append(
            BracketLink(text=raw, slug=slugify(raw), start=match.start(), end=match.end())
        )
    return results


def make_excerpt(body: Optional[str], length: int = 100) -> str:
    """Return the first ``length`` characters of a note body for previews."""
    if not body:
        return ""
    if len(body) <= length:
        return body
    return body[:length] + "..."


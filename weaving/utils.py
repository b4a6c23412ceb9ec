"""Utility functions for Weaving.

String, timestamp and filesystem helpers shared by the document model, the
markdown converter and the build coordinator.

Key functions:
    slugify: Convert heading text to a GFM-compatible anchor slug.
    unique_slug: De-duplicate slugs within one document.
    normalize_line_endings: Convert CRLF to LF.
    parse_timestamp: Parse frontmatter dates into aware datetimes.
    to_local_datetime: Convert a POSIX timestamp to an aware datetime.
    strip_tags: Remove HTML tags from rendered inline text.
    is_relative_to: Safe Path containment check.
"""

from __future__ import annotations

import html
import re
import unicodedata
from datetime import date, datetime, time
from pathlib import Path

from dateutil import parser as dateutil_parser

TAG_RE = re.compile(r"<[^>]+>")

# ASCII punctuation GFM turns into '-' when building heading anchors.
GFM_PUNCTUATION = frozenset("!\"#$%&()*+,./:;<=>@[\\]^_`{|}~-")


def slugify(text: str) -> str:
    """Convert heading text into a GitHub-flavoured anchor slug.

    The text is NFKD-normalised and lowercased. Alphanumerics are kept,
    whitespace and ASCII punctuation become ``-``, anything else is dropped.
    Runs of dashes are not collapsed.

    Args:
        text: Plain heading text.

    Returns:
        Slug string, possibly empty.

    Examples:
        >>> slugify("Intro - description")
        'intro---description'

        >>> slugify("Heading 1")
        'heading-1'
    """
    normalized = unicodedata.normalize("NFKD", text).lower()
    chars: list[str] = []
    for char in normalized:
        if char.isalnum():
            chars.append(char)
        elif char.isspace() or char in GFM_PUNCTUATION:
            chars.append("-")
    return "".join(chars)


def unique_slug(base: str, counts: dict[str, int]) -> str:
    """Return base, or base-N if it was already handed out.

    Args:
        base: Slug to register.
        counts: Per-document registry, mutated in place.

    Returns:
        A slug unique within the registry.
    """
    if base in counts:
        counts[base] += 1
        return f"{base}-{counts[base]}"
    counts[base] = 0
    return base


def strip_tags(text: str) -> str:
    """Remove HTML tags and unescape entities."""
    return html.unescape(TAG_RE.sub("", text))


def normalize_line_endings(text: str) -> str:
    """Replace CRLF line endings with LF."""
    return text.replace("\r\n", "\n")


def to_local_datetime(timestamp: float) -> datetime:
    """Convert a POSIX timestamp into an aware local datetime."""
    return datetime.fromtimestamp(timestamp).astimezone()


def parse_timestamp(value: object) -> datetime | None:
    """Parse a frontmatter timestamp.

    Accepts datetime and date objects (as produced by YAML and TOML) and
    any string dateutil understands, such as ISO-8601, RFC 2822 or
    "Jan 5, 2024". Naive values are interpreted as local time.

    Args:
        value: Raw frontmatter value.

    Returns:
        Timezone-aware datetime, or None if the value cannot be parsed.

    Examples:
        >>> parse_timestamp("2024-01-15").year
        2024

        >>> parse_timestamp("last tuesday") is None
        True
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time())
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            parsed = dateutil_parser.parse(text)
        except (ValueError, OverflowError):
            return None
    else:
        return None
    return parsed.astimezone() if parsed.tzinfo is None else parsed


def is_relative_to(path: Path, parent: Path) -> bool:
    """Check whether path lies inside parent.

    Args:
        path: Candidate path.
        parent: Directory to test against.

    Returns:
        True if path equals parent or is nested below it.
    """
    try:
        path.relative_to(parent)
    except ValueError:
        return False
    return True

"""Frontmatter extraction for Weaving.

Content files may start with a metadata block fenced by ``---`` (YAML) or
``+++`` (TOML). The block is split from the body here; turning the mapping
into typed metadata is the document model's job.

Key functions:
- split_frontmatter: Separate the raw block from the body.
- parse_frontmatter: Deserialize the block into a mapping.
"""

from __future__ import annotations

import re
import tomllib
from typing import Any

import yaml

YAML_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\n(.*?\n)?---[ \t]*(?:\n|\Z)", re.DOTALL)
TOML_FRONTMATTER_RE = re.compile(r"\A\+\+\+[ \t]*\n(.*?\n)?\+\+\+[ \t]*(?:\n|\Z)", re.DOTALL)


class FrontmatterError(ValueError):
    """Raised when a frontmatter block cannot be deserialized."""


def split_frontmatter(text: str) -> tuple[str | None, str | None, str]:
    """Split a frontmatter block from the document body.

    Args:
        text: Raw file content with LF line endings.

    Returns:
        Tuple of (format, raw block, body). Format is ``"yaml"``, ``"toml"``
        or None when the file has no frontmatter.
    """
    for fmt, pattern in (("yaml", YAML_FRONTMATTER_RE), ("toml", TOML_FRONTMATTER_RE)):
        match = pattern.match(text)
        if match:
            return fmt, match.group(1) or "", text[match.end() :]
    return None, None, text


def parse_frontmatter(fmt: str | None, block: str | None) -> dict[str, Any]:
    """Deserialize a frontmatter block.

    Args:
        fmt: ``"yaml"``, ``"toml"`` or None.
        block: Raw block text.

    Returns:
        Mapping of frontmatter keys. Empty when there is no block.

    Raises:
        FrontmatterError: If the block is malformed or not a mapping.
    """
    if fmt is None or not block or not block.strip():
        return {}
    try:
        if fmt == "toml":
            data = tomllib.loads(block)
        else:
            data = yaml.safe_load(block)
    except (yaml.YAMLError, tomllib.TOMLDecodeError) as exc:
        raise FrontmatterError(str(exc)) from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FrontmatterError(
            f"Expected a mapping of metadata, got {type(data).__name__}"
        )
    return data

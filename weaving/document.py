"""Document model for Weaving.

A Document is one content file: its frontmatter metadata, raw markdown body
and generated table of contents. Documents are loaded fresh on every build
and are not modified afterwards.

Key classes:
- Metadata: Recognised frontmatter keys plus user-defined extension fields.
- Document: A loaded content file.
- PageView: Read-only projection of a document exposed to templates.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from .errors import DocumentError, FileIOError
from .frontmatter import FrontmatterError, parse_frontmatter, split_frontmatter
from .markdown import Heading, toc_from_markdown
from .routes import route_from_path
from .utils import normalize_line_endings, parse_timestamp, to_local_datetime

logger = logging.getLogger(__name__)

RECOGNISED_KEYS = frozenset(
    {
        "title",
        "description",
        "tags",
        "keywords",
        "template",
        "emit",
        "published",
        "last_updated",
        "excerpt",
    }
)


@dataclass
class Metadata:
    """Frontmatter metadata of a document.

    Attributes:
        title: Page title.
        description: Short description for meta tags and feeds.
        tags: Tag names.
        keywords: Keywords for meta tags.
        template: Name of the page template used to wrap the document.
        emit: Whether the rendered page is written to disk.
        published: Publication timestamp, None if unknown.
        last_updated: Last modification timestamp, None if unknown.
        excerpt: Optional summary text.
        user: Every frontmatter key not listed above, passed through as-is.
    """

    title: str = ""
    description: str = ""
    tags: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    template: str = "default"
    emit: bool = True
    published: datetime | None = None
    last_updated: datetime | None = None
    excerpt: str | None = None
    user: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_frontmatter(cls, data: dict[str, Any], path: Path) -> Metadata:
        """Build metadata from a frontmatter mapping.

        Args:
            data: Deserialized frontmatter.
            path: Source file, used for timestamp fallbacks and warnings.

        Returns:
            Metadata instance.

        Raises:
            ValueError: If a recognised key has the wrong type.
        """
        meta = cls(
            title=_as_str(data.get("title", ""), "title"),
            description=_as_str(data.get("description", ""), "description"),
            tags=_as_str_list(data.get("tags", []), "tags"),
            keywords=_as_str_list(data.get("keywords", []), "keywords"),
            template=_as_str(data.get("template", "default"), "template") or "default",
            emit=_as_bool(data.get("emit", True), "emit"),
            excerpt=(
                None
                if data.get("excerpt") is None
                else _as_str(data["excerpt"], "excerpt")
            ),
            user={k: v for k, v in data.items() if k not in RECOGNISED_KEYS},
        )
        meta._apply_timestamps(data, path)
        return meta

    def _apply_timestamps(self, data: dict[str, Any], path: Path) -> None:
        raw_published = data.get("published")
        if raw_published is not None:
            self.published = parse_timestamp(raw_published)
            if self.published is None:
                logger.warning(
                    "Failed to parse the published date '%s' in %s",
                    raw_published,
                    path,
                )
            self.last_updated = self.published
        else:
            stat = path.stat()
            created = getattr(stat, "st_birthtime", None) or stat.st_ctime
            self.published = to_local_datetime(created)
            self.last_updated = to_local_datetime(stat.st_mtime)

        raw_updated = data.get("last_updated")
        if raw_updated is not None:
            parsed = parse_timestamp(raw_updated)
            if parsed is None:
                logger.warning(
                    "Failed to parse the last_updated date '%s' in %s",
                    raw_updated,
                    path,
                )
            else:
                self.last_updated = parsed

    def to_template_data(self) -> dict[str, Any]:
        """Flatten metadata into template values.

        User-defined keys sit alongside the recognised ones, so templates can
        write ``page.meta.author``. Timestamps become ISO-8601 strings.
        """
        data: dict[str, Any] = dict(self.user)
        data.update(
            {
                "title": self.title,
                "description": self.description,
                "tags": list(self.tags),
                "keywords": list(self.keywords),
                "template": self.template,
                "emit": self.emit,
                "published": self.published.isoformat() if self.published else None,
                "last_updated": (
                    self.last_updated.isoformat() if self.last_updated else None
                ),
                "excerpt": self.excerpt,
            }
        )
        return data


@dataclass
class Document:
    """A content file loaded for one build.

    Attributes:
        path: Absolute path of the source file.
        content_root: Content directory the route is derived from.
        metadata: Parsed frontmatter.
        markdown: Raw body, frontmatter removed.
        toc: Table of contents generated from the raw body.
        html: Rendered HTML body, when available.
        emit: Mirrors metadata.emit.
    """

    path: Path
    content_root: Path
    metadata: Metadata = field(default_factory=Metadata)
    markdown: str = ""
    toc: list[Heading] = field(default_factory=list)
    html: str | None = None
    emit: bool = True

    @classmethod
    def from_path(cls, content_root: Path, path: Path) -> Document:
        """Load a content file.

        A malformed frontmatter block does not fail the build: a warning is
        logged and the document is loaded with default metadata and the whole
        file as its body.

        Args:
            content_root: Content directory.
            path: Path to the markdown file.

        Returns:
            Document instance.

        Raises:
            FileIOError: If the file cannot be read.
            DocumentError: If the file is not valid UTF-8.
        """
        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise FileIOError(path, f"Failed to read file: {exc}", exc) from exc
        try:
            text = normalize_line_endings(raw.decode("utf-8"))
        except UnicodeDecodeError as exc:
            raise DocumentError(path, f"File is not valid UTF-8: {exc}", exc) from exc

        fmt, block, body = split_frontmatter(text)
        try:
            metadata = Metadata.from_frontmatter(parse_frontmatter(fmt, block), path)
        except (FrontmatterError, ValueError) as exc:
            logger.warning("error parsing '%s': %s", path, exc)
            metadata = Metadata.from_frontmatter({}, path)
            body = text

        return cls(
            path=path,
            content_root=content_root,
            metadata=metadata,
            markdown=body,
            toc=toc_from_markdown(body),
            emit=metadata.emit,
        )

    @property
    def route(self) -> str:
        """Route of this document, derived from its path."""
        return route_from_path(self.content_root, self.path)

    @property
    def is_section_index(self) -> bool:
        """True for ``<content>/<section>/index.*``, the listing page of a section."""
        relative = self.path.relative_to(self.content_root)
        return relative.stem == "index" and len(relative.parts) == 2


def _as_str(value: Any, key: str) -> str:
    if isinstance(value, (dict, list)):
        raise ValueError(f"'{key}' must be a string")
    return "" if value is None else str(value)


def _as_str_list(value: Any, key: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"'{key}' must be a list of strings")
    return [str(item) for item in value]


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ValueError(f"'{key}' must be true or false")


@dataclass(frozen=True)
class PageView:
    """Read-only projection of a document, as seen by templates.

    Views of every document are collected into one immutable snapshot per
    build; render tasks read it without locking. Only the view of the page
    being rendered ever carries a body.
    """

    route: str
    title: str
    body: str
    meta: Metadata
    toc: tuple[Heading, ...]
    source_path: Path
    emit: bool = True
    is_section_index: bool = False

    @classmethod
    def from_document(cls, document: Document) -> PageView:
        return cls(
            route=document.route,
            title=document.metadata.title,
            body=document.html or "",
            meta=document.metadata,
            toc=tuple(document.toc),
            source_path=document.path,
            emit=document.emit,
            is_section_index=document.is_section_index,
        )

    @property
    def published(self) -> datetime | None:
        return self.meta.published

    def with_body(self, body: str) -> PageView:
        return replace(self, body=body)

    def to_template_data(self) -> dict[str, Any]:
        return {
            "route": self.route,
            "title": self.title,
            "body": self.body,
            "meta": self.meta.to_template_data(),
            "toc": [heading.to_template_data() for heading in self.toc],
        }

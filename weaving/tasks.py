"""Whole-site tasks for Weaving.

Each task runs once per build, concurrently with the page renders, and reads
the same immutable snapshot. Tasks return at most one output; the
coordinator writes it after the build has joined.

Classes:
    SitemapTask: sitemap.xml listing every emitted page.
    AtomFeedTask: atom.xml with the most recent pages.
    PublicCopyTask: Copy the public directory into the build directory.
    WellKnownCopyTask: Copy .well-known into the build directory.

Functions:
    default_tasks: The task list every build runs.
    sweep_stale_outputs: Delete build files the current build did not produce.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .config import WeaverConfig
from .document import PageView
from .errors import RenderError
from .graph import sort_by_published
from .protocols import SiteTask
from .render import DirectoryCopy, WritableFile
from .templates import create_environment

logger = logging.getLogger(__name__)

SITEMAP_FILENAME = "sitemap.xml"
ATOM_FILENAME = "atom.xml"
WELL_KNOWN_DIRNAME = ".well-known"

SITEMAP_TEMPLATE = """\
<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
{%- for page in pages %}
  <url>
    <loc>{{ site_url }}{{ page.route }}</loc>
    {%- if page.lastmod %}
    <lastmod>{{ page.lastmod }}</lastmod>
    {%- endif %}
  </url>
{%- endfor %}
</urlset>
"""

ATOM_TEMPLATE = """\
<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>{{ site.title }}</title>
  {%- if site.description %}
  <subtitle>{{ site.description }}</subtitle>
  {%- endif %}
  <link href="{{ site_url }}/atom.xml" rel="self"/>
  <link href="{{ site_url }}/"/>
  <id>{{ site_url }}/</id>
  <updated>{{ updated }}</updated>
  {%- if site.author %}
  <author>
    <name>{{ site.author }}</name>
  </author>
  {%- endif %}
{%- for entry in entries %}
  <entry>
    <title>{{ entry.title }}</title>
    <link href="{{ site_url }}{{ entry.route }}"/>
    <id>{{ site_url }}{{ entry.route }}</id>
    {%- if entry.published %}
    <published>{{ entry.published }}</published>
    {%- endif %}
    <updated>{{ entry.updated }}</updated>
    {%- if entry.summary %}
    <summary>{{ entry.summary }}</summary>
    {%- endif %}
  </entry>
{%- endfor %}
</feed>
"""


def _render_feed(name: str, template: str, data: dict[str, Any]) -> str:
    env = create_environment(autoescape=True)
    try:
        return env.from_string(template).render(data)
    except Exception as exc:
        raise RenderError(None, f"Failed to render {name}: {exc}", exc) from exc


class SitemapTask:
    """Generates sitemap.xml for search engine indexing.

    Lists ``site_url + route`` for every page that is written to disk, with
    the date of its last update (or publication) as ``lastmod``.
    """

    name = "sitemap"

    def run(
        self, config: WeaverConfig, snapshot: Mapping[str, PageView]
    ) -> WritableFile | None:
        pages = []
        for route, view in snapshot.items():
            if not view.emit:
                continue
            stamp = view.meta.last_updated or view.meta.published
            pages.append(
                {"route": route, "lastmod": stamp.date().isoformat() if stamp else None}
            )
        contents = _render_feed(
            SITEMAP_FILENAME,
            SITEMAP_TEMPLATE,
            {"site_url": config.site_url, "pages": pages},
        )
        return WritableFile(path=config.build_dir / SITEMAP_FILENAME, contents=contents)


class AtomFeedTask:
    """Generates an Atom feed of the most recent pages.

    Section list pages, the home page and pages that are not emitted are left
    out. At most ``feed_limit`` entries are included, newest first.
    """

    name = "atom"

    def run(
        self, config: WeaverConfig, snapshot: Mapping[str, PageView]
    ) -> WritableFile | None:
        candidates = [
            view
            for route, view in snapshot.items()
            if view.emit and not view.is_section_index and route != "/"
        ]
        recent = sort_by_published(candidates)[: max(config.feed_limit, 0)]

        stamps = [view.meta.last_updated or view.meta.published for view in recent]
        known = [stamp for stamp in stamps if stamp is not None]
        feed_updated = max(known) if known else datetime.now(timezone.utc)

        entries = []
        for view, updated in zip(recent, stamps):
            entries.append(
                {
                    "title": view.title or view.route,
                    "route": view.route,
                    "published": view.published.isoformat() if view.published else None,
                    "updated": (updated or feed_updated).isoformat(),
                    "summary": view.meta.excerpt or view.meta.description,
                }
            )

        contents = _render_feed(
            ATOM_FILENAME,
            ATOM_TEMPLATE,
            {
                "site": config.to_template_data(),
                "site_url": config.site_url,
                "updated": feed_updated.isoformat(),
                "entries": entries,
            },
        )
        return WritableFile(path=config.build_dir / ATOM_FILENAME, contents=contents)


class PublicCopyTask:
    """Copies ``public_dir`` to ``{build_dir}/{basename(public_dir)}``."""

    name = "public-copy"

    def run(
        self, config: WeaverConfig, snapshot: Mapping[str, PageView]
    ) -> DirectoryCopy | None:
        if not config.public_dir.is_dir():
            logger.debug("No public directory at %s", config.public_dir)
            return None
        return DirectoryCopy(
            source=config.public_dir,
            destination=config.build_dir / config.public_dir.name,
        )


class WellKnownCopyTask:
    """Copies ``{base_dir}/.well-known`` to ``{build_dir}/.well-known``."""

    name = "well-known-copy"

    def run(
        self, config: WeaverConfig, snapshot: Mapping[str, PageView]
    ) -> DirectoryCopy | None:
        if not config.well_known_dir.is_dir():
            logger.debug("No .well-known directory at %s", config.well_known_dir)
            return None
        return DirectoryCopy(
            source=config.well_known_dir,
            destination=config.build_dir / WELL_KNOWN_DIRNAME,
        )


def default_tasks() -> list[SiteTask]:
    """Return the whole-site tasks every build runs."""
    return [SitemapTask(), AtomFeedTask(), PublicCopyTask(), WellKnownCopyTask()]


def sweep_stale_outputs(config: WeaverConfig, produced: Iterable[Path]) -> list[Path]:
    """Delete files in the build directory that this build did not produce.

    The public copy, ``.well-known``, ``sitemap.xml`` and ``atom.xml`` are
    never touched. Directories left empty are removed afterwards. Failures to
    delete are logged and skipped.

    Args:
        config: Site configuration.
        produced: Paths written by the current build.

    Returns:
        The files that were removed.
    """
    build_dir = config.build_dir
    if not build_dir.is_dir():
        return []

    keep = {path.resolve() for path in produced}
    protected_dirs = [
        (build_dir / config.public_dir.name).resolve(),
        (build_dir / WELL_KNOWN_DIRNAME).resolve(),
    ]
    protected_files = {
        (build_dir / SITEMAP_FILENAME).resolve(),
        (build_dir / ATOM_FILENAME).resolve(),
    }

    removed: list[Path] = []
    directories: list[Path] = []
    for path in sorted(build_dir.rglob("*")):
        resolved = path.resolve()
        if any(resolved == d or d in resolved.parents for d in protected_dirs):
            continue
        if path.is_dir():
            directories.append(path)
            continue
        if resolved in keep or resolved in protected_files:
            continue
        try:
            path.unlink()
        except OSError as exc:
            logger.error("Failed to delete stale file %s: %s", path, exc)
            continue
        logger.info("Removed stale file %s", path)
        removed.append(path)

    for directory in sorted(directories, key=lambda p: len(p.parts), reverse=True):
        try:
            next(directory.iterdir())
        except StopIteration:
            try:
                directory.rmdir()
            except OSError as exc:
                logger.error("Failed to delete directory %s: %s", directory, exc)
        except OSError as exc:
            logger.error("Failed to inspect directory %s: %s", directory, exc)
    return removed

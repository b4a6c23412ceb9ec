"""Content graph for Weaving.

Every page is rendered with a view of every other page, grouped into
sections by the first segment of their route. The grouping is computed once
per build from an immutable snapshot; each render only removes its own page.

Key classes and functions:
- build_snapshot: Freeze the page projections of a build, keyed by route.
- SectionIndex: Pages partitioned into sorted section buckets.
- RenderContext: Everything a template sees while rendering one page.
- build_render_context: Assemble the context for one page.

Section conventions:
- The bucket key is the first route segment; the home page ``/`` lives in
  the ``root`` bucket.
- The ``index`` file directly inside a section directory is that section's
  list page and is left out of its own bucket. ``content/about.md`` is not a
  list page and is listed under ``about``.
- Buckets are ordered by published date, newest first. Undated pages come
  last, in scan order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from .document import Document, PageView
from .routes import first_segment

logger = logging.getLogger(__name__)


def build_snapshot(documents: Iterable[Document]) -> Mapping[str, PageView]:
    """Project documents into a read-only route -> view mapping.

    Views carry no body. When two files map to the same route, the later one
    wins and a warning is logged.

    Args:
        documents: Documents in scan order.

    Returns:
        Immutable mapping of route to page view, in scan order.
    """
    views: dict[str, PageView] = {}
    for document in documents:
        view = PageView.from_document(document).with_body("")
        existing = views.get(view.route)
        if existing is not None:
            logger.warning(
                "Route %s is produced by both %s and %s; using %s",
                view.route,
                existing.source_path,
                view.source_path,
                view.source_path,
            )
        views[view.route] = view
    return MappingProxyType(views)


def sort_by_published(views: Iterable[PageView]) -> list[PageView]:
    """Sort views newest first, undated views last, keeping input order on ties."""
    dated: list[PageView] = []
    undated: list[PageView] = []
    for view in views:
        (dated if view.published is not None else undated).append(view)
    dated.sort(key=lambda view: view.published, reverse=True)
    return dated + undated


def is_list_page(view: PageView, section: str) -> bool:
    """Check whether a view is the listing page of a section."""
    return view.is_section_index and view.route == f"/{section}/"


class SectionIndex:
    """Section buckets for one build.

    The snapshot is partitioned and sorted once; sections_for() only has to
    drop the page being rendered.

    Attributes:
        buckets: Section name -> views, sorted newest first.
    """

    def __init__(self, snapshot: Mapping[str, PageView]):
        partitioned: dict[str, list[PageView]] = {}
        for route, view in snapshot.items():
            section = first_segment(route)
            bucket = partitioned.setdefault(section, [])
            if is_list_page(view, section):
                continue
            bucket.append(view)

        self.buckets: dict[str, tuple[PageView, ...]] = {
            section: tuple(sort_by_published(views))
            for section, views in partitioned.items()
        }
        self._template_data: dict[str, tuple[dict[str, Any], ...]] = {
            section: tuple(view.to_template_data() for view in views)
            for section, views in self.buckets.items()
        }

    def sections_for(self, route: str) -> dict[str, list[PageView]]:
        """Return the buckets as seen from the page at route.

        The page is removed from every bucket. A bucket that held nothing but
        that page is dropped.
        """
        sections: dict[str, list[PageView]] = {}
        for section, views in self.buckets.items():
            remaining = [view for view in views if view.route != route]
            if views and not remaining:
                continue
            sections[section] = remaining
        return sections

    def template_data_for(self, route: str) -> dict[str, list[dict[str, Any]]]:
        """Same as sections_for(), projected to template values."""
        data: dict[str, list[dict[str, Any]]] = {}
        for section, views in self.buckets.items():
            entries = self._template_data[section]
            remaining = [
                entry for view, entry in zip(views, entries) if view.route != route
            ]
            if views and not remaining:
                continue
            data[section] = remaining
        return data


@dataclass
class RenderContext:
    """Template context for rendering one page.

    Attributes:
        page: Projection of the page being rendered.
        content: Section buckets without the current page, as template data.
        site_config: Site configuration as template data.
        extra_css: Stylesheet for highlighted code blocks.
    """

    page: PageView
    content: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    site_config: dict[str, Any] = field(default_factory=dict)
    extra_css: str = ""

    def set_body(self, html: str) -> None:
        """Fill in the rendered body before the page wrap."""
        self.page = self.page.with_body(html)

    def to_template_data(self) -> dict[str, Any]:
        return {
            "page": self.page.to_template_data(),
            "content": self.content,
            "extra_css": self.extra_css,
            "site_config": self.site_config,
        }


def build_render_context(
    view: PageView,
    index: SectionIndex,
    site_config: dict[str, Any] | None = None,
    extra_css: str = "",
) -> RenderContext:
    """Assemble the render context for one page.

    Args:
        view: Projection of the page being rendered.
        index: Section index of the current build.
        site_config: Site configuration as template data.
        extra_css: Stylesheet for highlighted code blocks.

    Returns:
        A fresh RenderContext with an empty page body.
    """
    return RenderContext(
        page=view.with_body(""),
        content=index.template_data_for(view.route),
        site_config=dict(site_config or {}),
        extra_css=extra_css,
    )

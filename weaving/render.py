"""Per-document render pipeline for Weaving.

Each document goes through the same strictly ordered stages:

1. Find the page template named by the document.
2. Render the markdown body as a template (body pass).
3. Convert the templated markdown to HTML.
4. Render the page template with the HTML as ``page.body`` (page wrap).
5. Compute ``{build_dir}/{route}/index.html``.

Nothing is written here; the pipeline returns outputs for the coordinator to
write after every task has finished.

Key classes:
- WritableFile: A file to write once the build has joined.
- DirectoryCopy: A directory tree to copy once the build has joined.
- RenderPipeline: Runs the stages above for one document.
"""

from __future__ import annotations

import logging
import shutil
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .document import Document, PageView
from .errors import FileIOError
from .graph import SectionIndex, build_render_context
from .markdown import MarkdownConverter
from .templates import TemplateEngine

logger = logging.getLogger(__name__)


def output_path_for(build_dir: Path, route: str) -> Path:
    """Return the index.html path a route is written to."""
    relative = route.strip("/")
    return (build_dir / relative / "index.html") if relative else build_dir / "index.html"


@dataclass(frozen=True)
class WritableFile:
    """A rendered file waiting to be written.

    Attributes:
        path: Target path.
        contents: Text to write.
        emit: False for pages that are rendered but never written.
    """

    path: Path
    contents: str
    emit: bool = True

    def write(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(self.contents, encoding="utf-8")
        except OSError as exc:
            raise FileIOError(self.path, f"Failed to write file: {exc}", exc) from exc
        logger.debug("Wrote %s", self.path)

    def target_paths(self) -> Iterator[Path]:
        yield self.path


@dataclass(frozen=True)
class DirectoryCopy:
    """A directory tree waiting to be copied into the build directory.

    Attributes:
        source: Directory to copy.
        destination: Directory to copy into; merged with existing content.
        emit: Always True for copies.
    """

    source: Path
    destination: Path
    emit: bool = True

    def write(self) -> None:
        try:
            shutil.copytree(self.source, self.destination, dirs_exist_ok=True)
        except (OSError, shutil.Error) as exc:
            raise FileIOError(
                self.source, f"Failed to copy to {self.destination}: {exc}", exc
            ) from exc
        logger.debug("Copied %s to %s", self.source, self.destination)

    def target_paths(self) -> Iterator[Path]:
        for path in self.source.rglob("*"):
            if path.is_file():
                yield self.destination / path.relative_to(self.source)


class RenderPipeline:
    """Renders documents against one build's snapshot.

    One pipeline is shared by all render tasks of a build. It holds only
    read-only state, so render() may run concurrently.

    Attributes:
        build_dir: Output root.
        engine: Template engine with the scanned templates and partials.
        index: Section index of the build.
        converter: Markdown converter.
        site_config: Site configuration as template data.
        extra_css: Stylesheet for highlighted code blocks.
    """

    def __init__(
        self,
        build_dir: Path,
        engine: TemplateEngine,
        index: SectionIndex,
        converter: MarkdownConverter | None = None,
        site_config: Mapping[str, Any] | None = None,
        extra_css: str = "",
    ):
        self.build_dir = build_dir
        self.engine = engine
        self.index = index
        self.converter = converter or MarkdownConverter()
        self.site_config = dict(site_config or {})
        self.extra_css = extra_css

    def render(self, document: Document) -> WritableFile:
        """Render one document.

        Args:
            document: Loaded document.

        Returns:
            The page, with the document's emit flag.

        Raises:
            TemplateError: If the page template is missing or fails to render.
            RenderError: If the body pass fails.
        """
        template = self.engine.find_page_template(
            document.metadata.template, document.path
        )

        view = PageView.from_document(document)
        context = build_render_context(
            view, self.index, self.site_config, self.extra_css
        )

        templated = self.engine.render_body(
            document.markdown, context.to_template_data(), document.path
        )
        html = self.converter.convert(templated)

        context.set_body(html)
        rendered = self.engine.render_page(
            template, context.to_template_data(), document.path
        )

        logger.debug("Rendered %s with %s", view.route, template.name)
        return WritableFile(
            path=output_path_for(self.build_dir, view.route),
            contents=rendered,
            emit=document.emit,
        )

"""Site building functionality for Weaving.

The Weaver coordinates a build: it scans content, templates and partials,
freezes a snapshot of every page, then renders every document and runs every
whole-site task concurrently. Files are written only once all of them have
finished, and only if none failed.

Key classes and functions:
- Weaver: Build coordinator.
- BuildResult: Summary of a finished build.
- build_site: Scan and build a site in one call.
- syntax_css: Pygments stylesheet for the configured theme.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pygments.formatters import HtmlFormatter
from pygments.util import ClassNotFound

from .config import WeaverConfig, load_config
from .document import Document
from .errors import BuildError, TaskJoinError
from .graph import SectionIndex, build_snapshot
from .markdown import MarkdownConverter
from .protocols import SiteTask, WritableOutput
from .render import RenderPipeline
from .tasks import default_tasks, sweep_stale_outputs
from .templates import TemplateEngine, TemplateSource, scan_templates

logger = logging.getLogger(__name__)

CONTENT_PATTERN = "*.md"


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        documents: Every document that was rendered.
        build_dir: Directory the site was written to.
        written: Files created by this build (copied files included).
        skipped: Pages rendered but not written because emit is false.
        removed: Stale files deleted after writing.
    """

    documents: list[Document]
    build_dir: Path
    written: list[Path] = field(default_factory=list)
    skipped: list[Path] = field(default_factory=list)
    removed: list[Path] = field(default_factory=list)


def syntax_css(theme: str) -> str:
    """Return Pygments CSS for the .highlight class.

    Args:
        theme: Pygments style name. Unknown names fall back to ``default``.

    Returns:
        CSS string.
    """
    try:
        formatter = HtmlFormatter(style=theme)
    except ClassNotFound:
        logger.warning("Unknown syntax theme '%s', using 'default'", theme)
        formatter = HtmlFormatter(style="default")
    return formatter.get_style_defs(".highlight")


def _join(futures: Sequence[Future], labels: Sequence[str]) -> list[Any]:
    """Wait for every future, then return results or raise the first error.

    All futures run to completion before anything is inspected. Every
    failure is logged; only the first, in submission order, is raised.
    Exceptions that are not BuildErrors are wrapped in TaskJoinError.
    """
    wait(futures)
    results: list[Any] = []
    first_error: BuildError | None = None
    for future, label in zip(futures, labels):
        exc = future.exception()
        if exc is None:
            results.append(future.result())
            continue
        if not isinstance(exc, BuildError):
            exc = TaskJoinError(None, f"{label} failed: {exc!r}", exc)
        logger.error("%s", exc.describe())
        if first_error is None:
            first_error = exc
    if first_error is not None:
        raise first_error
    return results


class Weaver:
    """Build coordinator for one site.

    A Weaver holds the state of a single build. The dev server creates a new
    one for every rebuild.

    Example:
        >>> result = (
        ...     Weaver(Path("my-site"))
        ...     .scan_content()
        ...     .scan_templates()
        ...     .scan_partials()
        ...     .build()
        ... )

    Attributes:
        base_path: Site root.
        config: Resolved configuration.
        tasks: Whole-site tasks run by build().
        documents: Documents found by scan_content(), in path order.
        templates: Page templates found by scan_templates().
        partials: Partials found by scan_partials().
        tags: Every tag of every document, in scan order.
        routes: Route of every document, in scan order.
    """

    def __init__(
        self,
        base_path: Path,
        config: WeaverConfig | None = None,
        tasks: Iterable[SiteTask] | None = None,
    ):
        self.base_path = Path(base_path).resolve()
        self.config = config or load_config(self.base_path)
        self.tasks: list[SiteTask] = (
            list(tasks) if tasks is not None else default_tasks()
        )
        self.documents: list[Document] = []
        self.templates: list[TemplateSource] = []
        self.partials: list[TemplateSource] = []
        self.tags: list[str] = []
        self.routes: list[str] = []

    def _executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="weaving"
        )

    def scan_content(self) -> Weaver:
        """Load every markdown file under the content directory in parallel.

        Returns:
            self, for chaining.

        Raises:
            BuildError: If any document fails to load.
        """
        content_dir = self.config.content_dir
        if not content_dir.is_dir():
            logger.warning("Content directory %s does not exist", content_dir)
            paths: list[Path] = []
        else:
            paths = sorted(p for p in content_dir.rglob(CONTENT_PATTERN) if p.is_file())

        with self._executor() as pool:
            futures = [
                pool.submit(Document.from_path, content_dir, path) for path in paths
            ]
            self.documents = _join(futures, [str(path) for path in paths])

        self.routes = [document.route for document in self.documents]
        self.tags = [tag for document in self.documents for tag in document.metadata.tags]
        logger.debug("Loaded %d documents from %s", len(self.documents), content_dir)
        return self

    def scan_templates(self) -> Weaver:
        """Load page templates. Returns self."""
        self.templates = scan_templates(
            self.config.template_dir, self.config.template_extension
        )
        return self

    def scan_partials(self) -> Weaver:
        """Load partials. Returns self."""
        self.partials = scan_templates(
            self.config.partials_dir, self.config.template_extension
        )
        return self

    def build(self) -> BuildResult:
        """Render every document, run every task and write the results.

        Returns:
            BuildResult describing what was written.

        Raises:
            BuildError: The first failure of any render or task. Nothing is
                written in that case.
        """
        config = self.config
        logger.info("Building %s into %s", self.base_path, config.build_dir)

        snapshot = build_snapshot(self.documents)
        pipeline = RenderPipeline(
            build_dir=config.build_dir,
            engine=TemplateEngine(self.templates, self.partials),
            index=SectionIndex(snapshot),
            converter=MarkdownConverter(),
            site_config=config.to_template_data(),
            extra_css=syntax_css(config.syntax_theme),
        )

        with self._executor() as pool:
            futures = [pool.submit(pipeline.render, doc) for doc in self.documents]
            futures += [pool.submit(task.run, config, snapshot) for task in self.tasks]
            labels = [str(doc.path) for doc in self.documents]
            labels += [f"task '{task.name}'" for task in self.tasks]
            outputs: list[WritableOutput | None] = _join(futures, labels)

        result = BuildResult(documents=list(self.documents), build_dir=config.build_dir)
        for output in outputs:
            if output is None:
                continue
            if not output.emit:
                result.skipped.extend(output.target_paths())
                continue
            output.write()
            result.written.extend(output.target_paths())

        if config.clean_stale:
            result.removed = sweep_stale_outputs(config, result.written)

        logger.info(
            "Built %d pages (%d files written) into %s",
            len(self.documents),
            len(result.written),
            config.build_dir,
        )
        return result


def build_site(base_path: Path) -> BuildResult:
    """Build the site at base_path with its weaving.yaml settings.

    Args:
        base_path: Site root.

    Returns:
        BuildResult of the build.
    """
    return Weaver(base_path).scan_content().scan_templates().scan_partials().build()

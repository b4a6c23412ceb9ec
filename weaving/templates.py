"""Template discovery and rendering for Weaving.

Page templates and partials are scanned from disk into memory and served to
Jinja2 through a DictLoader, so every render in a build sees the same
template set regardless of later edits on disk.

Key classes:
- TemplateSource: One scanned template or partial.
- TemplateEngine: Resolves page templates and renders bodies and pages.

Templates follow Liquid semantics: output is not autoescaped, and the
``raw`` filter exists for templates written against engines that do escape.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from jinja2 import DictLoader, Environment, TemplateError as JinjaTemplateError
from markupsafe import Markup

from .errors import FileIOError, RenderError, TemplateError
from .utils import parse_timestamp

logger = logging.getLogger(__name__)

__all__ = ["TemplateEngine", "TemplateSource", "render_toc", "scan_templates"]


@dataclass(frozen=True)
class TemplateSource:
    """A template file held in memory.

    Attributes:
        name: Path relative to its scan root, with forward slashes.
        path: Absolute path on disk.
        source: Template text.
    """

    name: str
    path: Path
    source: str

    @property
    def base_name(self) -> str:
        """File name with every extension removed (``blog.html.jinja`` -> ``blog``)."""
        return Path(self.name).name.split(".", 1)[0]

    def matches(self, template_name: str) -> bool:
        """Check whether a document's ``template`` value refers to this file."""
        if template_name in (self.name, self.base_name):
            return True
        return Path(self.name).with_suffix("").as_posix() == template_name


def scan_templates(directory: Path, extension: str) -> list[TemplateSource]:
    """Load every template file below a directory.

    Args:
        directory: Directory to scan recursively. A missing directory yields
            no templates.
        extension: Template file extension including the dot.

    Returns:
        Templates sorted by relative name.

    Raises:
        FileIOError: If a template cannot be read.
        TemplateError: If a template is not valid UTF-8.
    """
    if not directory.is_dir():
        logger.debug("Template directory %s does not exist", directory)
        return []

    found: list[TemplateSource] = []
    for path in sorted(directory.rglob(f"*{extension}")):
        if not path.is_file():
            continue
        try:
            source = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise TemplateError(path, f"Template is not valid UTF-8: {exc}", exc) from exc
        except OSError as exc:
            raise FileIOError(path, f"Failed to read template: {exc}", exc) from exc
        name = path.relative_to(directory).as_posix()
        logger.debug("Found template %s", name)
        found.append(TemplateSource(name=name, path=path, source=source))
    return found


def render_toc(toc: Iterable[Mapping[str, Any]]) -> Markup:
    """Render TOC entries as nested ``<ul>`` lists.

    Args:
        toc: Entries with ``depth``, ``text`` and ``slug`` keys, as exposed
            in ``page.toc``.

    Returns:
        Markup-safe HTML, empty if there are no entries.
    """
    html_parts: list[str] = []
    level_stack: list[int] = []

    for entry in toc:
        level = int(entry["depth"])

        while level_stack and level_stack[-1] > level:
            level_stack.pop()
            html_parts.append("</li></ul>")

        if level_stack and level_stack[-1] == level:
            html_parts.append("</li>")
        else:
            html_parts.append("<ul>")
            level_stack.append(level)

        html_parts.append(
            Markup('<li><a href="#{}">{}</a>').format(entry["slug"], entry["text"])
        )

    while level_stack:
        level_stack.pop()
        html_parts.append("</li></ul>")

    return Markup("".join(html_parts))


def _raw_filter(value: Any) -> Markup:
    return Markup("" if value is None else str(value))


def _json_filter(value: Any) -> str:
    return json.dumps(value, indent=2, ensure_ascii=False, default=str)


def _has_key_filter(value: Any, key: str) -> bool:
    return isinstance(value, Mapping) and key in value


def _date_filter(value: Any, fmt: str = "%Y-%m-%d") -> str:
    if value is None or value == "":
        return ""
    parsed = value if isinstance(value, datetime) else parse_timestamp(value)
    if parsed is None:
        return str(value)
    return parsed.strftime(fmt)


def create_environment(
    templates: Mapping[str, str] | None = None, autoescape: bool = False
) -> Environment:
    """Create a Jinja2 environment with the Weaving filters installed.

    Args:
        templates: Mapping of template name to source for the loader.
        autoescape: Whether output is HTML-escaped. Page rendering keeps
            this off; XML feeds turn it on.

    Returns:
        Configured Environment.
    """
    env = Environment(
        loader=DictLoader(dict(templates or {})),
        autoescape=autoescape,
        keep_trailing_newline=True,
    )
    env.filters["raw"] = _raw_filter
    env.filters["json"] = _json_filter
    env.filters["has_key"] = _has_key_filter
    env.filters["date"] = _date_filter
    env.globals["render_toc"] = render_toc
    return env


class TemplateEngine:
    """Template rendering engine using Jinja2.

    Attributes:
        templates: Scanned page templates.
        partials: Scanned partials, includable by relative name.
        env: Jinja2 environment backed by the in-memory template set.
    """

    def __init__(
        self,
        templates: Iterable[TemplateSource],
        partials: Iterable[TemplateSource] = (),
    ):
        self.templates = list(templates)
        self.partials = list(partials)

        sources: dict[str, str] = {}
        for partial in self.partials:
            sources[partial.name] = partial.source
        for template in self.templates:
            if template.name in sources:
                logger.warning(
                    "Template %s shadows a partial with the same name", template.name
                )
            sources[template.name] = template.source
        self.env = create_environment(sources)

    def find_page_template(self, template_name: str, source_path: Path | None = None) -> TemplateSource:
        """Find the page template a document asks for.

        Args:
            template_name: Value of the document's ``template`` key.
            source_path: Document path, for error reporting.

        Returns:
            The matching template.

        Raises:
            TemplateError: If no scanned template matches.
        """
        for template in self.templates:
            if template.matches(template_name):
                return template
        available = ", ".join(t.name for t in self.templates) or "none"
        raise TemplateError(
            source_path,
            f"Template '{template_name}' not found (available: {available})",
        )

    def render_body(self, body: str, context: Mapping[str, Any], source_path: Path | None = None) -> str:
        """Render a document body as a template.

        Args:
            body: Raw markdown body.
            context: Template data from the render context.
            source_path: Document path, for error reporting.

        Returns:
            Templated markdown.

        Raises:
            RenderError: If the body fails to parse or render.
        """
        try:
            return self.env.from_string(body).render(context)
        except Exception as exc:
            raise RenderError(source_path, _describe(exc), exc) from exc

    def render_page(
        self,
        template: TemplateSource,
        context: Mapping[str, Any],
        source_path: Path | None = None,
    ) -> str:
        """Wrap a rendered page in its page template.

        Args:
            template: Page template found by find_page_template.
            context: Template data with the page body filled in.
            source_path: Document path, for error reporting.

        Returns:
            Final HTML.

        Raises:
            TemplateError: If the template fails to parse or render.
        """
        try:
            return self.env.get_template(template.name).render(context)
        except Exception as exc:
            raise TemplateError(
                source_path, f"{template.name}: {_describe(exc)}", exc
            ) from exc


def _describe(exc: Exception) -> str:
    error_type = type(exc).__name__
    if isinstance(exc, JinjaTemplateError):
        lineno = getattr(exc, "lineno", None)
        if lineno:
            return f"{error_type} on line {lineno}: {exc.message or exc}"
        return f"{error_type}: {exc.message or exc}"
    if error_type == "UndefinedError":
        return f"Undefined variable: {exc}"
    return f"{error_type}: {exc}"

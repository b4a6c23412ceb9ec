"""Markdown conversion for Weaving.

Markdown is converted with mistune using a fixed extension set (tables,
strikethrough, footnotes, bare-URL autolinks) and a custom renderer that adds
heading anchors, GitHub-style alerts and Pygments-highlighted code fences.

Key classes and functions:
- MarkdownConverter: Converts a markdown string to HTML.
- toc_from_markdown: Extract the table of contents from raw markdown.
- Heading: One TOC entry.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass
from typing import Any

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .utils import slugify, strip_tags, unique_slug

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]

ALERT_RE = re.compile(
    r"\A<p>\[!(NOTE|TIP|IMPORTANT|WARNING|CAUTION)\][ \t]*\n?", re.IGNORECASE
)


@dataclass(frozen=True)
class Heading:
    """A table of contents entry.

    Attributes:
        depth: Heading level (1-6).
        text: Plain heading text.
        slug: Anchor id of the heading.
    """

    depth: int
    text: str
    slug: str

    def to_template_data(self) -> dict[str, Any]:
        return {"depth": self.depth, "text": self.text, "slug": self.slug}


class _WeavingRenderer(mistune.HTMLRenderer):
    """HTML renderer with heading anchors, alerts and syntax highlighting."""

    def __init__(self):
        super().__init__(escape=False)
        self._slug_counts: dict[str, int] = {}

    def heading(self, text: str, level: int, **attrs) -> str:
        base = slugify(strip_tags(text))
        if not base:
            return f"<h{level}>{text}</h{level}>\n"
        slug = unique_slug(base, self._slug_counts)
        anchor = f'<a href="#{slug}" aria-hidden="true" class="anchor" id="{slug}"></a>'
        return f"<h{level}>{anchor}{text}</h{level}>\n"

    def block_quote(self, text: str) -> str:
        match = ALERT_RE.match(text)
        if not match:
            return super().block_quote(text)
        kind = match.group(1).lower()
        body = "<p>" + text[match.end() :]
        body = body.replace("<p></p>\n", "", 1)
        return (
            f'<div class="markdown-alert markdown-alert-{kind}">\n'
            f'<p class="markdown-alert-title">{kind.capitalize()}</p>\n'
            f"{body}</div>\n"
        )

    def block_code(self, code: str, info: str | None = None) -> str:
        lang = info.split()[0] if info and info.strip() else ""
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                lexer = None
            if lexer is not None:
                formatter = HtmlFormatter(nowrap=False, cssclass="highlight")
                return highlight(code, lexer, formatter)
        escaped = html.escape(code, quote=False)
        lang_class = f' class="language-{html.escape(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escaped}</code></pre>\n"


class MarkdownConverter:
    """Converts markdown to HTML with the site-wide extension set.

    A new mistune parser and renderer are created per conversion, so one
    converter can be shared between render threads.
    """

    def __init__(self, plugins: list[str] | None = None):
        self.plugins = list(plugins) if plugins is not None else list(MARKDOWN_PLUGINS)

    def convert(self, text: str) -> str:
        """Convert markdown text to HTML.

        Args:
            text: Markdown source (already templated).

        Returns:
            Rendered HTML.
        """
        markdown = mistune.create_markdown(
            renderer=_WeavingRenderer(), plugins=self.plugins
        )
        return markdown(text)


def toc_from_markdown(text: str) -> list[Heading]:
    """Extract the table of contents from raw markdown.

    Headings nested in block quotes and lists are included; headings whose
    slug would be empty are skipped. Duplicate slugs are suffixed the same
    way the HTML renderer suffixes its anchors.

    Args:
        text: Markdown source.

    Returns:
        Headings in document order.
    """
    parse = mistune.create_markdown(renderer="ast", plugins=MARKDOWN_PLUGINS)
    tokens = parse(text)
    headings: list[Heading] = []
    counts: dict[str, int] = {}
    for token in _iter_headings(tokens):
        heading_text = _inline_text(token.get("children", []))
        base = slugify(heading_text)
        if not base:
            continue
        depth = int(token.get("attrs", {}).get("level", 1))
        headings.append(
            Heading(depth=depth, text=heading_text, slug=unique_slug(base, counts))
        )
    return headings


def _iter_headings(tokens: list[dict[str, Any]]):
    for token in tokens:
        if token.get("type") == "heading":
            yield token
        elif token.get("children"):
            yield from _iter_headings(token["children"])


def _inline_text(children: list[dict[str, Any]]) -> str:
    parts: list[str] = []
    for child in children:
        kind = child.get("type")
        if kind in ("text", "codespan"):
            parts.append(child.get("raw", ""))
        elif child.get("children"):
            parts.append(_inline_text(child["children"]))
    return "".join(parts)

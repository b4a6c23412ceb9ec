"""Weaving static site generator.

Weaving turns a directory of markdown content and Jinja2 templates into a
static site, and serves it with live reload while you write.

A build scans content, templates and partials, freezes a snapshot of every
page, renders all pages and whole-site tasks (sitemap, Atom feed, directory
copies) concurrently, and writes the results only once every task has
succeeded.

The main entry point is the CLI module; ``weaving.build.Weaver`` is the
programmatic one.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"

"""Site configuration for Weaving.

Configuration lives in an optional ``weaving.yaml`` at the site root. Every
key has a default, so a site with no config file builds with the conventional
layout (``content/``, ``templates/``, ``partials/``, ``public/`` -> ``site/``).

Key functions:
- load_config: Read weaving.yaml and resolve directories against the site root.
- default_config_text: The YAML written by ``weaving config``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigError

CONFIG_FILENAME = "weaving.yaml"

TEMPLATE_EXTENSIONS = {"jinja": ".jinja"}

DEFAULT_WATCH_EXCLUDES = [r"\.git", "node_modules", ".*~", "__pycache__"]


@dataclass
class ServeConfig:
    """Settings for ``weaving serve``.

    Attributes:
        address: host:port the preview HTTP server binds to.
        ws_port: Port of the live reload websocket (defaults to HTTP port + 1).
        watch_excludes: Regex patterns for paths that never trigger a rebuild.
        debounce_ms: Quiet period after the last change before rebuilding.
    """

    address: str = "localhost:8080"
    ws_port: int | None = None
    watch_excludes: list[str] = field(
        default_factory=lambda: list(DEFAULT_WATCH_EXCLUDES)
    )
    debounce_ms: int = 250

    @property
    def host(self) -> str:
        host, _, _ = self.address.rpartition(":")
        return host or "localhost"

    @property
    def port(self) -> int:
        _, _, port = self.address.rpartition(":")
        try:
            return int(port)
        except ValueError:
            return 8080

    @property
    def resolved_ws_port(self) -> int:
        return self.ws_port if self.ws_port is not None else self.port + 1


@dataclass
class WeaverConfig:
    """Resolved site configuration.

    All directory attributes are absolute paths.
    """

    base_dir: Path
    content_dir: Path
    template_dir: Path
    partials_dir: Path
    public_dir: Path
    build_dir: Path
    version: int = 1
    base_url: str = "localhost:8080"
    title: str = ""
    description: str = ""
    author: str = ""
    templating_language: str = "jinja"
    syntax_theme: str = "default"
    feed_limit: int = 20
    clean_stale: bool = False
    max_workers: int | None = None
    serve: ServeConfig = field(default_factory=ServeConfig)

    @classmethod
    def for_base_dir(cls, base_dir: Path) -> WeaverConfig:
        """Return the default configuration for a site rooted at base_dir."""
        return _resolve(base_dir, {})

    @property
    def template_extension(self) -> str:
        return TEMPLATE_EXTENSIONS[self.templating_language]

    @property
    def site_url(self) -> str:
        """base_url with a scheme and without a trailing slash."""
        url = self.base_url.rstrip("/")
        if "://" not in url:
            url = f"http://{url}"
        return url

    @property
    def well_known_dir(self) -> Path:
        return self.base_dir / ".well-known"

    def to_template_data(self) -> dict[str, Any]:
        """Project the config into plain values for templates."""
        return {
            "version": self.version,
            "base_dir": str(self.base_dir),
            "content_dir": str(self.content_dir),
            "template_dir": str(self.template_dir),
            "partials_dir": str(self.partials_dir),
            "public_dir": str(self.public_dir),
            "build_dir": str(self.build_dir),
            "base_url": self.base_url,
            "site_url": self.site_url,
            "title": self.title,
            "description": self.description,
            "author": self.author,
            "templating_language": self.templating_language,
            "syntax_theme": self.syntax_theme,
        }


def load_config(base_dir: Path) -> WeaverConfig:
    """Load site configuration from weaving.yaml.

    Args:
        base_dir: Root directory of the site.

    Returns:
        WeaverConfig with defaults applied and directories resolved.

    Raises:
        ConfigError: If weaving.yaml is not valid YAML, not a mapping, or holds
            a value of the wrong type.
    """
    base_dir = Path(base_dir).resolve()
    config_path = base_dir / CONFIG_FILENAME
    loaded: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path, encoding="utf-8") as f:
                payload = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(config_path, f"Invalid YAML: {exc}", exc) from exc
        if not isinstance(payload, dict):
            raise ConfigError(config_path, "Expected a mapping at the top level")
        loaded = payload
    return _resolve(base_dir, loaded)


def _resolve(base_dir: Path, loaded: dict[str, Any]) -> WeaverConfig:
    def directory(key: str, default: str) -> Path:
        path = Path(str(loaded.get(key) or default))
        return path if path.is_absolute() else base_dir / path

    def integer(source: dict[str, Any], key: str, default: int, label: str = "") -> int:
        raw = source.get(key, default)
        if not isinstance(raw, bool):
            try:
                return int(raw)
            except (TypeError, ValueError) as exc:
                raise ConfigError(
                    base_dir / CONFIG_FILENAME, f"'{label or key}' must be an integer", exc
                ) from exc
        raise ConfigError(base_dir / CONFIG_FILENAME, f"'{label or key}' must be an integer")

    max_workers = loaded.get("max_workers")
    if max_workers is not None and (
        isinstance(max_workers, bool) or not isinstance(max_workers, int) or max_workers < 1
    ):
        raise ConfigError(
            base_dir / CONFIG_FILENAME,
            "'max_workers' must be a positive integer or null",
        )

    language = str(loaded.get("templating_language", "jinja")).lower()
    if language not in TEMPLATE_EXTENSIONS:
        raise ConfigError(
            base_dir / CONFIG_FILENAME,
            f"Unsupported templating_language '{language}'",
        )

    serve_raw = loaded.get("serve") or {}
    if not isinstance(serve_raw, dict):
        raise ConfigError(base_dir / CONFIG_FILENAME, "'serve' must be a mapping")
    serve = ServeConfig(
        address=str(serve_raw.get("address", "localhost:8080")),
        ws_port=(
            None
            if serve_raw.get("ws_port") is None
            else integer(serve_raw, "ws_port", 0, "serve.ws_port")
        ),
        watch_excludes=list(serve_raw.get("watch_excludes", DEFAULT_WATCH_EXCLUDES)),
        debounce_ms=integer(serve_raw, "debounce_ms", 250, "serve.debounce_ms"),
    )

    return WeaverConfig(
        base_dir=base_dir,
        content_dir=directory("content_dir", "content"),
        template_dir=directory("template_dir", "templates"),
        partials_dir=directory("partials_dir", "partials"),
        public_dir=directory("public_dir", "public"),
        build_dir=directory("build_dir", "site"),
        version=integer(loaded, "version", 1),
        base_url=str(loaded.get("base_url", "localhost:8080")),
        title=str(loaded.get("title", "")),
        description=str(loaded.get("description", "")),
        author=str(loaded.get("author", "")),
        templating_language=language,
        syntax_theme=str(loaded.get("syntax_theme", "default")),
        feed_limit=integer(loaded, "feed_limit", 20),
        clean_stale=bool(loaded.get("clean_stale", False)),
        max_workers=max_workers,
        serve=serve,
    )


def default_config_text() -> str:
    """Return the default weaving.yaml contents."""
    return """version: 1
content_dir: content
template_dir: templates
partials_dir: partials
public_dir: public
build_dir: site
base_url: localhost:8080
title: ""
templating_language: jinja
syntax_theme: default

serve:
  address: localhost:8080
  debounce_ms: 250
  watch_excludes:
    - '\\.git'
    - node_modules
    - '.*~'
    - __pycache__
"""

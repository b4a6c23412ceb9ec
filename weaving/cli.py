"""Command-line interface for Weaving.

This module defines the CLI commands using Click framework.

Commands:
- build: Build the site into the build directory.
- serve: Run development server with live reload.
- config: Write a default weaving.yaml.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click

from . import __version__
from .config import CONFIG_FILENAME, default_config_text
from .errors import BuildError

_PATH_OPTION = dict(
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    envvar="WEAVING_BASE_PATH",
    help="Site root (or set WEAVING_BASE_PATH)",
)


@click.group()
@click.version_option(version=__version__, prog_name="weaving")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
def cli(verbose: bool):
    """Weaving static site generator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def _report_failure(exc: BuildError, base_path: Path) -> None:
    click.echo(click.style("Build failed:", fg="red", bold=True), err=True)
    if exc.source_path is not None:
        try:
            shown = exc.source_path.resolve().relative_to(base_path.resolve())
        except ValueError:
            shown = exc.source_path
        click.echo(click.style(f"  File: {shown}", fg="yellow"), err=True)
    click.echo(click.style(f"  {exc.kind}: {exc.message}", fg="white"), err=True)


@cli.command()
@click.option("--path", "base_path", **_PATH_OPTION)
def build(base_path: Path):
    """Build the site into the build directory."""
    from .build import build_site

    try:
        result = build_site(base_path)
    except BuildError as exc:
        _report_failure(exc, base_path)
        raise SystemExit(1) from None
    click.echo(
        f"Built {len(result.documents)} pages into {result.build_dir}"
        f" ({len(result.written)} files written)"
    )


@cli.command()
@click.option("--path", "base_path", **_PATH_OPTION)
@click.option(
    "--port",
    type=int,
    required=False,
    help="Port to run the dev server (overrides serve.address)",
)
@click.option(
    "--ws-port",
    type=int,
    required=False,
    help="Port for the live reload websocket server (overrides serve.ws_port)",
)
def serve(base_path: Path, port: int | None, ws_port: int | None):
    """Run dev server with live reload."""
    from .server import DevServer

    try:
        server = DevServer(base_path, http_port=port, ws_port=ws_port)
    except BuildError as exc:
        _report_failure(exc, base_path)
        raise SystemExit(1) from None
    server.start()


@cli.command("config")
@click.option("--path", "base_path", **_PATH_OPTION)
@click.option("--force", is_flag=True, help=f"Overwrite an existing {CONFIG_FILENAME}")
def write_config(base_path: Path, force: bool):
    """Write a default weaving.yaml."""
    target = base_path / CONFIG_FILENAME
    if target.exists() and not force:
        raise click.ClickException(
            f"{target} already exists (use --force to overwrite)"
        )
    base_path.mkdir(parents=True, exist_ok=True)
    target.write_text(default_config_text(), encoding="utf-8")
    click.echo(f"Wrote {target}")


def main():
    """Entry point for the CLI application."""
    cli()

"""Route derivation for Weaving.

A route is the canonical URL path a content file is published at. Routes
always start with ``/`` and end with ``/`` (the home page is just ``/``), and
an ``index`` file shares the route of its directory.

Key functions:
- route_from_path: Derive the route for a content file.
- first_segment: Return the section a route belongs to.
"""

from __future__ import annotations

from pathlib import Path, PurePath

from .errors import RouteError

ROOT_SECTION = "root"


def route_from_path(content_dir: Path, path: Path) -> str:
    """Derive the route for a content file.

    Args:
        content_dir: Content root directory.
        path: Path to the content file, inside content_dir.

    Returns:
        Route string such as ``/``, ``/about/`` or ``/blog/post1/``.

    Raises:
        RouteError: If path is not inside content_dir.

    Examples:
        >>> route_from_path(Path("/site/content"), Path("/site/content/blog/post1.md"))
        '/blog/post1/'

        >>> route_from_path(Path("/site/content"), Path("/site/content/index.md"))
        '/'
    """
    try:
        relative = PurePath(path).relative_to(PurePath(content_dir))
    except ValueError as exc:
        raise RouteError(
            Path(path),
            f"Path is not within content directory {content_dir}",
            exc,
        ) from exc

    parts = [part for part in relative.parts if part not in ("", ".", "..", "/")]
    if parts:
        stem = PurePath(parts.pop()).stem
        if stem != "index":
            parts.append(stem)

    if not parts:
        return "/"
    return "/" + "/".join(parts) + "/"


def first_segment(route: str) -> str:
    """Return the first path segment of a route.

    Args:
        route: A route produced by route_from_path.

    Returns:
        The segment, or ``"root"`` for the home page.
    """
    segments = [part for part in route.split("/") if part]
    return segments[0] if segments else ROOT_SECTION

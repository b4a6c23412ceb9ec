"""Error types raised while building a Weaving site.

Every failure surfaced by the build is a ``BuildError`` subclass, so callers
(the CLI and the dev server) can catch one type and report it. The subclass
names the stage that failed.

Classes:
    BuildError: Base class carrying the offending source path.
    FileIOError: Reading or writing a file failed.
    RouteError: A content path lies outside the content directory.
    DocumentError: A content file could not be read as text.
    TemplateError: A page template is missing or failed to render.
    RenderError: A document body or feed failed to render.
    TaskJoinError: A concurrent task failed with an unexpected exception.
    ConfigError: The configuration file is malformed.
"""

from __future__ import annotations

from pathlib import Path


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error, if any.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    kind = "Build Error"

    def __init__(
        self,
        source_path: Path | None,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        if source_path is None:
            super().__init__(message)
        else:
            super().__init__(f"{source_path}: {message}")

    def describe(self) -> str:
        """Return the message prefixed with the error kind."""
        return f"{self.kind}: {self}"


class FileIOError(BuildError):
    kind = "I/O Error"


class RouteError(BuildError):
    kind = "Route Error"


class DocumentError(BuildError):
    kind = "Document Error"


class TemplateError(BuildError):
    kind = "Template Error"


class RenderError(BuildError):
    kind = "Render Error"


class TaskJoinError(BuildError):
    kind = "Task Join Error"


class ConfigError(BuildError):
    kind = "Config Error"

"""Protocol definitions for Weaving.

The build coordinator only depends on these interfaces. Whole-site tasks
(sitemap, feed, directory copies) and their outputs are plain classes that
satisfy them structurally.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .config import WeaverConfig
    from .document import PageView


@runtime_checkable
class WritableOutput(Protocol):
    """Something a build writes to disk once every task has finished."""

    emit: bool

    @abstractmethod
    def write(self) -> None:
        """Apply the output to disk.

        Raises:
            FileIOError: If the write fails.
        """
        ...

    @abstractmethod
    def target_paths(self) -> Iterable[Path]:
        """Return the files this output creates, for the stale-file sweep."""
        ...


@runtime_checkable
class SiteTask(Protocol):
    """A whole-site task run once per build alongside the page renders.

    Tasks read the shared snapshot and never write to disk themselves; they
    hand back at most one output for the coordinator to write.
    """

    name: str

    @abstractmethod
    def run(
        self, config: WeaverConfig, snapshot: Mapping[str, PageView]
    ) -> WritableOutput | None:
        """Produce this task's output.

        Args:
            config: Site configuration.
            snapshot: Immutable route -> page view mapping of the build.

        Returns:
            The output to write, or None if there is nothing to do.

        Raises:
            BuildError: If the task fails.
        """
        ...

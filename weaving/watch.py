"""Debounced rebuild loop for the Weaving dev server.

watchdog delivers filesystem events on its own thread. The handler only
pushes changed paths onto a queue; the WatchLoop drains that queue on the
thread that owns it, keeps the debounce timestamp, and runs at most one
rebuild at a time. Events that arrive during a rebuild are coalesced into a
single follow-up rebuild.

Key classes:
- WatchLoop: Debounce state machine that triggers rebuilds.
- ChangeHandler: watchdog handler feeding a WatchLoop.
"""

from __future__ import annotations

import enum
import logging
import queue
import re
import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler

from .errors import BuildError
from .utils import is_relative_to

logger = logging.getLogger(__name__)

WATCHED_EVENT_TYPES = frozenset({"created", "modified", "deleted", "moved"})


class WatchState(enum.Enum):
    IDLE = "idle"
    OBSERVING = "observing"
    DEBOUNCE_PENDING = "debounce-pending"
    REBUILDING = "rebuilding"


class WatchLoop:
    """Turns a stream of changed paths into debounced rebuilds.

    Attributes:
        root: Watched directory; exclusion patterns see paths relative to it.
        build_dir: Output directory; changes inside it are ignored.
        excludes: Compiled exclusion patterns.
        debounce: Quiet period in seconds after the last qualifying event.
        state: Current WatchState.
        rebuild_count: Number of rebuilds started.
    """

    def __init__(
        self,
        root: Path,
        build_dir: Path,
        excludes: Iterable[str],
        rebuild: Callable[[], Any],
        on_success: Callable[[], None] | None = None,
        debounce: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.root = Path(root).resolve()
        self.build_dir = Path(build_dir).resolve()
        self.excludes = [re.compile(pattern) for pattern in excludes]
        self.debounce = debounce
        self.state = WatchState.IDLE
        self.rebuild_count = 0
        self._rebuild = rebuild
        self._on_success = on_success
        self._clock = clock
        self._events: queue.Queue[tuple[str, ...]] = queue.Queue()
        self._pending_since: float | None = None

    def submit(self, paths: Iterable[str | Path]) -> None:
        """Queue one filesystem event. Safe to call from any thread."""
        self._events.put(tuple(str(path) for path in paths))

    def is_excluded(self, path: str | Path) -> bool:
        """Check a single path against the build directory and the patterns."""
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        candidate = candidate.resolve()
        if is_relative_to(candidate, self.build_dir):
            return True
        try:
            relative = candidate.relative_to(self.root)
        except ValueError:
            relative = candidate
        parts = [part for part in relative.parts if part not in ("/", "")]
        for pattern in self.excludes:
            if pattern.fullmatch(relative.as_posix()):
                return True
            if any(pattern.fullmatch(part) for part in parts):
                return True
        return False

    def should_ignore(self, paths: Iterable[str | Path]) -> bool:
        """True when every path of an event is excluded."""
        paths = list(paths)
        return not paths or all(self.is_excluded(path) for path in paths)

    def step(self, timeout: float = 0.05) -> bool:
        """Process queued events and rebuild if the debounce window has elapsed.

        Args:
            timeout: How long to wait for the first event.

        Returns:
            True if a rebuild ran.
        """
        if self.state is WatchState.IDLE:
            self.state = WatchState.OBSERVING

        self._drain(timeout)

        if self._pending_since is None:
            return False
        if self._clock() - self._pending_since < self.debounce:
            return False

        self._pending_since = None
        self._rebuild_now()
        # events queued during the rebuild start a new window
        self._drain(0)
        if self._pending_since is None:
            self.state = WatchState.OBSERVING
        return True

    def run(self, stop: threading.Event, poll_interval: float = 0.05) -> None:
        """Step until stop is set."""
        logger.debug("Watching %s", self.root)
        while not stop.is_set():
            self.step(poll_interval)
        self.state = WatchState.IDLE

    def _drain(self, timeout: float) -> None:
        block = timeout > 0
        while True:
            try:
                paths = self._events.get(block=block, timeout=timeout if block else None)
            except queue.Empty:
                return
            block = False
            if self.should_ignore(paths):
                logger.debug("Ignoring change to %s", ", ".join(paths))
                continue
            logger.debug("Change detected: %s", ", ".join(paths))
            self._pending_since = self._clock()
            self.state = WatchState.DEBOUNCE_PENDING

    def _rebuild_now(self) -> None:
        self.state = WatchState.REBUILDING
        self.rebuild_count += 1
        logger.info("Change detected, rebuilding...")
        try:
            self._rebuild()
        except BuildError as exc:
            logger.error("Rebuild failed: %s", exc.describe())
            return
        except Exception:
            logger.exception("Rebuild failed")
            return
        logger.info("Rebuild complete")
        if self._on_success is not None:
            self._on_success()


class ChangeHandler(FileSystemEventHandler):
    """watchdog handler that forwards file changes to a WatchLoop."""

    def __init__(self, loop: WatchLoop):
        super().__init__()
        self.loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in WATCHED_EVENT_TYPES:
            return
        paths = [event.src_path]
        dest_path = getattr(event, "dest_path", "")
        if dest_path:
            paths.append(dest_path)
        self.loop.submit(_decode(path) for path in paths)


def _decode(path: str | bytes) -> str:
    return path.decode() if isinstance(path, bytes) else path

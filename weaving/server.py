"""Development server for Weaving.

Serves the built site with live reload for local authoring:
- Pretty URLs: ``/about`` and ``/about/`` both serve ``about/index.html``.
- Files under the public directory are served byte for byte.
- Text responses get the live reload script injected before ``</body>``.
- Missing files fall back to the site's own ``/404/`` page when it has one.
- Source changes trigger a debounced rebuild, then a reload broadcast.

Key classes and functions:
- DevServer: Runs the HTTP server, websocket server and watch loop.
- PreviewHandler: HTTP request handler built on serve_path().
- serve_path: Map a request path to a response.
"""

from __future__ import annotations

import asyncio
import codecs
import functools
import io
import logging
import mimetypes
import os
import threading
from dataclasses import dataclass
from http.server import SimpleHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import unquote, urlsplit

from watchdog.observers import Observer

from .build import BuildResult, Weaver
from .config import load_config
from .errors import BuildError
from .livereload import LiveReloadBroadcaster, reload_script
from .watch import ChangeHandler, WatchLoop

logger = logging.getLogger(__name__)

BINARY_SNIFF_BYTES = 8192
NOT_FOUND_ROUTE = "404"
TEXT_PLAIN = "text/plain; charset=utf-8"


@dataclass
class PreviewResponse:
    """A response computed by serve_path().

    Attributes:
        status: HTTP status code.
        content_type: Value of the Content-Type header.
        body: Response body for generated or injected content.
        path: File to stream as-is instead of body.
        length: Size of the streamed file.
    """

    status: int
    content_type: str
    body: bytes = b""
    path: Path | None = None
    length: int = 0

    @property
    def content_length(self) -> int:
        return self.length if self.path is not None else len(self.body)


def sanitize_request_path(request_path: str) -> list[str]:
    """Split a request path into safe segments.

    Query strings and fragments are dropped, percent-escapes decoded, and
    empty, ``.`` and ``..`` segments removed.

    Examples:
        >>> sanitize_request_path("/../etc/passwd?x=1")
        ['etc', 'passwd']
    """
    path = unquote(urlsplit(request_path).path)
    return [
        segment
        for segment in path.replace("\\", "/").split("/")
        if segment not in ("", ".", "..")
    ]


def resolve_request_path(build_dir: Path, request_path: str, public_prefix: str = "") -> Path:
    """Map a request path to a file in the build directory.

    Args:
        build_dir: Directory the site is built into.
        request_path: Raw request path.
        public_prefix: Name of the copied public directory, served as-is.

    Returns:
        Path of the file to serve. It may not exist.
    """
    segments = sanitize_request_path(request_path)
    target = build_dir.joinpath(*segments)
    if not segments or urlsplit(request_path).path.endswith("/"):
        return target / "index.html"
    if public_prefix and segments[0] == public_prefix:
        return target
    if not target.exists() or target.is_dir():
        return target / "index.html"
    return target


def is_probably_binary(head: bytes) -> bool:
    """Check whether the first bytes of a file look binary.

    Args:
        head: Leading bytes of the file.

    Returns:
        True if they contain a NUL byte or are not valid UTF-8.
    """
    if b"\0" in head:
        return True
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        decoder.decode(head, final=False)
    except UnicodeDecodeError:
        return True
    return False


def inject_reload_script(text: str, script: str) -> str:
    """Insert script before the last ``</body>``, or append it."""
    index = text.rfind("</body>")
    if index == -1:
        return text + script
    return text[:index] + script + text[index:]


def guess_content_type(path: Path) -> str:
    content_type, _ = mimetypes.guess_type(path.name)
    if content_type is None:
        return "application/octet-stream"
    if content_type.startswith("text/"):
        return f"{content_type}; charset=utf-8"
    return content_type


def serve_path(
    build_dir: Path,
    request_path: str,
    public_prefix: str = "",
    script: str = "",
) -> PreviewResponse:
    """Compute the response for a GET request.

    Args:
        build_dir: Directory the site is built into.
        request_path: Raw request path.
        public_prefix: Name of the copied public directory.
        script: Live reload script to inject into HTML responses.

    Returns:
        PreviewResponse. Missing files give a 404, other read errors a 500.
    """
    target = resolve_request_path(build_dir, request_path, public_prefix)
    content_type = guess_content_type(target)
    try:
        with open(target, "rb") as f:
            head = f.read(BINARY_SNIFF_BYTES)
            if is_probably_binary(head):
                size = os.fstat(f.fileno()).st_size
                return PreviewResponse(200, content_type, path=target, length=size)
            data = head + f.read()
    except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
        return _not_found(build_dir, request_path, script)
    except OSError as exc:
        logger.error("Failed to serve %s: %s", target, exc)
        return PreviewResponse(500, TEXT_PLAIN, f"Error: {exc}".encode())

    text = data.decode("utf-8", errors="replace")
    if content_type.startswith("text/html"):
        text = inject_reload_script(text, script)
    return PreviewResponse(200, content_type, text.encode("utf-8"))


def _not_found(build_dir: Path, request_path: str, script: str) -> PreviewResponse:
    segments = sanitize_request_path(request_path)
    custom = build_dir / NOT_FOUND_ROUTE / "index.html"
    if segments[:1] != [NOT_FOUND_ROUTE] and custom.is_file():
        try:
            text = custom.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Failed to read %s: %s", custom, exc)
        else:
            body = inject_reload_script(text, script).encode("utf-8")
            return PreviewResponse(404, "text/html; charset=utf-8", body)
    message = f"Error: File not found: {request_path}"
    return PreviewResponse(404, TEXT_PLAIN, message.encode("utf-8"))


class PreviewHandler(SimpleHTTPRequestHandler):
    """HTTP request handler serving the build directory through serve_path().

    Attributes:
        public_prefix: Name of the copied public directory.
        reload_script: Live reload script injected into text responses.
    """

    public_prefix = ""
    reload_script = ""

    def send_head(self):
        response = serve_path(
            Path(self.directory), self.path, self.public_prefix, self.reload_script
        )
        if response.path is not None:
            try:
                stream = open(response.path, "rb")
            except OSError as exc:
                response = PreviewResponse(500, TEXT_PLAIN, f"Error: {exc}".encode())
            else:
                self._send_headers(response)
                return stream
        self._send_headers(response)
        return io.BytesIO(response.body)

    def _send_headers(self, response: PreviewResponse) -> None:
        self.send_response(response.status)
        self.send_header("Content-type", response.content_type)
        self.send_header("Content-Length", str(response.content_length))
        self.end_headers()

    def end_headers(self):
        self.send_header("Cache-Control", "no-cache, no-store, must-revalidate")
        super().end_headers()

    def log_message(self, format, *args):
        logger.debug("%s - %s", self.address_string(), format % args)


class DevServer:
    """Development server with live reload functionality.

    Attributes:
        base_path: Site root.
        config: Site configuration at startup.
        host: Interface the servers bind to.
        http_port: Port for the HTTP server.
        ws_port: Port for the live reload websocket.
        broadcaster: Live reload client registry.
        watch_loop: Debounced rebuild loop.
    """

    def __init__(
        self,
        base_path: Path,
        http_port: int | None = None,
        ws_port: int | None = None,
    ):
        self.base_path = Path(base_path).resolve()
        self.config = load_config(self.base_path)
        serve = self.config.serve
        self.host = serve.host
        self.http_port = http_port or serve.port
        if ws_port is not None:
            self.ws_port = ws_port
        elif serve.ws_port is not None:
            self.ws_port = serve.ws_port
        else:
            self.ws_port = self.http_port + 1

        self.broadcaster = LiveReloadBroadcaster()
        self.watch_loop = WatchLoop(
            root=self.base_path,
            build_dir=self.config.build_dir,
            excludes=serve.watch_excludes,
            rebuild=self.rebuild,
            on_success=self.broadcaster.signal_reload,
            debounce=serve.debounce_ms / 1000,
        )
        self._observer: Observer | None = None
        self._httpd: ThreadingHTTPServer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._ws_task: asyncio.Task | None = None
        self._stop = threading.Event()

    def rebuild(self) -> BuildResult:
        """Build the site from scratch with a fresh Weaver."""
        return Weaver(self.base_path).scan_content().scan_templates().scan_partials().build()

    def start(self) -> None:  # pragma: no cover - integration path
        try:
            self.rebuild()
        except BuildError as exc:
            logger.error("Initial build failed: %s", exc.describe())
        threading.Thread(target=self._start_http, daemon=True).start()
        threading.Thread(target=self._start_ws, daemon=True).start()
        self._start_watcher()
        try:
            self.watch_loop.run(self._stop)
        except KeyboardInterrupt:
            logger.info("Shutting down")
        finally:
            self.stop()

    def stop(self) -> None:
        self._stop.set()
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
        if self._httpd:
            self._httpd.shutdown()
            self._httpd = None
        if self._ws_task is not None and self._loop is not None and not self._loop.is_closed():
            self._loop.call_soon_threadsafe(self._ws_task.cancel)

    def handler_class(self) -> type[PreviewHandler]:
        return type(
            "_PreviewHandlerForSite",
            (PreviewHandler,),
            {
                "public_prefix": self.config.public_dir.name,
                "reload_script": reload_script(self.ws_port),
            },
        )

    def _start_http(self) -> None:  # pragma: no cover - integration path
        handler = functools.partial(
            self.handler_class(), directory=str(self.config.build_dir)
        )
        self._httpd = ThreadingHTTPServer((self.host, self.http_port), handler)
        logger.info(
            "Serving %s at http://%s:%d", self.config.build_dir, self.host, self.http_port
        )
        self._httpd.serve_forever()

    def _start_ws(self) -> None:  # pragma: no cover - integration path
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._ws_task = self._loop.create_task(
            self.broadcaster.serve(self.host, self.ws_port)
        )
        try:
            self._loop.run_until_complete(self._ws_task)
        except asyncio.CancelledError:
            logger.debug("Live reload server stopped")
        except OSError as exc:
            logger.error(
                "WebSocket server failed to start (port %d): %s", self.ws_port, exc
            )

    def _start_watcher(self) -> None:  # pragma: no cover - integration path
        observer = Observer()
        observer.schedule(ChangeHandler(self.watch_loop), str(self.base_path), recursive=True)
        observer.start()
        self._observer = observer

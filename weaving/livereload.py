"""Live reload for the Weaving dev server.

Browsers open a websocket to the dev server and reload the page when they
receive ``"reload"``. The LiveReloadBroadcaster keeps the set of connected
clients and fans each reload out to all of them. It is created by the dev
server and handed to both the websocket server and the rebuild callback.

Key classes:
- LiveReloadBroadcaster: Client registry and reload fan-out.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

import websockets

logger = logging.getLogger(__name__)

HELLO_MESSAGE = "hello"
RELOAD_MESSAGE = "reload"

RELOAD_SCRIPT_TEMPLATE = """
<script>
(() => {{
  const connect = () => {{
    const ws = new WebSocket('ws://' + location.hostname + ':{ws_port}/ws');
    ws.onmessage = (event) => {{
      if (event.data === 'reload') location.reload();
    }};
    ws.onclose = () => setTimeout(connect, 1000);
  }};
  connect();
}})();
</script>
"""


def reload_script(ws_port: int) -> str:
    """Return the client script for a websocket on ws_port."""
    return RELOAD_SCRIPT_TEMPLATE.format(ws_port=ws_port)


class LiveReloadBroadcaster:
    """Registry of connected live reload clients.

    The client set is guarded by a lock held only to copy or prune it; sends
    happen outside the lock. Reload signals from other threads travel to the
    event loop over an asyncio queue.

    Attributes:
        loop: Event loop the websocket server runs on, once bound.
    """

    def __init__(self) -> None:
        self._clients: set[Any] = set()
        self._lock = threading.Lock()
        self.loop: asyncio.AbstractEventLoop | None = None
        self._signals: asyncio.Queue[str] | None = None

    @property
    def client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def register(self, client: Any) -> None:
        with self._lock:
            self._clients.add(client)
        logger.info("Live reload client connected (%d total)", self.client_count)

    def unregister(self, client: Any) -> None:
        with self._lock:
            self._clients.discard(client)
        logger.debug("Live reload client disconnected (%d left)", self.client_count)

    async def broadcast(self, message: str = RELOAD_MESSAGE) -> int:
        """Send message to every client, dropping the ones that fail.

        Args:
            message: Text frame to send.

        Returns:
            Number of clients the message reached.
        """
        with self._lock:
            clients = list(self._clients)
        if not clients:
            return 0

        results = await asyncio.gather(
            *(client.send(message) for client in clients), return_exceptions=True
        )
        failed = []
        for client, result in zip(clients, results):
            if isinstance(result, BaseException):
                logger.error("Dropping live reload client: %s", result)
                failed.append(client)
        if failed:
            with self._lock:
                self._clients.difference_update(failed)
        return len(clients) - len(failed)

    async def handler(self, websocket: Any) -> None:
        """Serve one websocket connection until it closes."""
        self.register(websocket)
        try:
            try:
                await websocket.send(HELLO_MESSAGE)
            except Exception as exc:
                logger.error("Live reload handshake failed: %s", exc)
                return
            await websocket.wait_closed()
        finally:
            self.unregister(websocket)

    def bind(self, loop: asyncio.AbstractEventLoop) -> None:
        """Attach to the event loop that will deliver reload signals."""
        self.loop = loop
        self._signals = asyncio.Queue()

    def signal_reload(self) -> None:
        """Request a reload broadcast. Safe to call from any thread."""
        loop, signals = self.loop, self._signals
        if loop is None or signals is None or loop.is_closed():
            logger.debug("Live reload is not running; reload signal dropped")
            return
        loop.call_soon_threadsafe(signals.put_nowait, RELOAD_MESSAGE)

    async def deliver_next(self) -> int:
        """Wait for one reload signal and broadcast it."""
        if self._signals is None:
            self.bind(asyncio.get_running_loop())
        message = await self._signals.get()
        delivered = await self.broadcast(message)
        logger.debug("Reload delivered to %d clients", delivered)
        return delivered

    async def pump(self) -> None:
        """Deliver reload signals forever."""
        while True:
            await self.deliver_next()

    async def serve(self, host: str, port: int) -> None:
        """Run the websocket server and deliver reload signals until cancelled."""
        self.bind(asyncio.get_running_loop())
        async with websockets.serve(self.handler, host, port):
            logger.info("Live reload listening on ws://%s:%d/ws", host, port)
            await self.pump()

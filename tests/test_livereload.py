import asyncio

from weaving.livereload import (
    HELLO_MESSAGE,
    RELOAD_MESSAGE,
    LiveReloadBroadcaster,
    reload_script,
)


class GoodClient:
    def __init__(self):
        self.sent = []
        self.closed = asyncio.Event()

    async def send(self, msg):
        self.sent.append(msg)

    async def wait_closed(self):
        await self.closed.wait()


class BadClient:
    async def send(self, msg):
        raise RuntimeError("fail")

    async def wait_closed(self):
        return None


def test_broadcast_reaches_every_client():
    broadcaster = LiveReloadBroadcaster()
    clients = [GoodClient() for _ in range(3)]
    for client in clients:
        broadcaster.register(client)

    delivered = asyncio.run(broadcaster.broadcast())

    assert delivered == 3
    assert all(client.sent == [RELOAD_MESSAGE] for client in clients)
    assert broadcaster.client_count == 3


def test_broadcast_prunes_failed_clients():
    broadcaster = LiveReloadBroadcaster()
    good, bad = GoodClient(), BadClient()
    broadcaster.register(good)
    broadcaster.register(bad)

    assert asyncio.run(broadcaster.broadcast("hello")) == 1
    assert good.sent == ["hello"]
    assert broadcaster.client_count == 1

    assert asyncio.run(broadcaster.broadcast()) == 1
    assert good.sent == ["hello", RELOAD_MESSAGE]


def test_broadcast_without_clients():
    assert asyncio.run(LiveReloadBroadcaster().broadcast()) == 0


def test_handler_greets_and_unregisters_on_close():
    broadcaster = LiveReloadBroadcaster()

    async def scenario():
        client = GoodClient()
        task = asyncio.create_task(broadcaster.handler(client))
        await asyncio.sleep(0)
        assert broadcaster.client_count == 1
        client.closed.set()
        await task
        return client

    client = asyncio.run(scenario())
    assert client.sent == [HELLO_MESSAGE]
    assert broadcaster.client_count == 0


def test_handler_drops_client_when_handshake_fails():
    broadcaster = LiveReloadBroadcaster()
    asyncio.run(broadcaster.handler(BadClient()))
    assert broadcaster.client_count == 0


def test_concurrent_handlers_all_receive_reload():
    broadcaster = LiveReloadBroadcaster()

    async def scenario():
        clients = [GoodClient() for _ in range(4)]
        tasks = [asyncio.create_task(broadcaster.handler(c)) for c in clients]
        await asyncio.sleep(0)
        delivered = await broadcaster.broadcast()
        for client in clients:
            client.closed.set()
        await asyncio.gather(*tasks)
        return delivered, clients

    delivered, clients = asyncio.run(scenario())
    assert delivered == 4
    assert all(c.sent == [HELLO_MESSAGE, RELOAD_MESSAGE] for c in clients)
    assert broadcaster.client_count == 0


def test_signal_reload_is_delivered_on_bound_loop():
    broadcaster = LiveReloadBroadcaster()
    client = GoodClient()
    broadcaster.register(client)

    async def scenario():
        broadcaster.bind(asyncio.get_running_loop())
        waiter = asyncio.create_task(broadcaster.deliver_next())
        broadcaster.signal_reload()
        return await asyncio.wait_for(waiter, timeout=1)

    assert asyncio.run(scenario()) == 1
    assert client.sent == [RELOAD_MESSAGE]


def test_signal_reload_from_another_thread():
    broadcaster = LiveReloadBroadcaster()
    client = GoodClient()
    broadcaster.register(client)

    async def scenario():
        broadcaster.bind(asyncio.get_running_loop())
        waiter = asyncio.create_task(broadcaster.deliver_next())
        await asyncio.to_thread(broadcaster.signal_reload)
        return await asyncio.wait_for(waiter, timeout=1)

    assert asyncio.run(scenario()) == 1


def test_signal_reload_without_loop_is_dropped():
    broadcaster = LiveReloadBroadcaster()
    broadcaster.signal_reload()
    assert broadcaster.loop is None


def test_reload_script_targets_ws_port():
    script = reload_script(35730)
    assert script.strip().startswith("<script>")
    assert ":35730/ws" in script
    assert "location.reload()" in script
    assert "{" in script and "{{" not in script

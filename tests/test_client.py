import asyncio

from helpers import FakeConnection, wait_until

from tailcast.client import Client
from tailcast.registry import ClientRegistry


def _drain(client):
    items = []
    while not client.queue.empty():
        items.append(client.queue.get_nowait())
    return items


async def test_drop_oldest_keeps_newest_frames():
    client = Client(FakeConnection(), queue_size=2, drop="oldest")

    for payload in ("1", "2", "3"):
        assert client.offer(payload) is True

    assert _drain(client) == ["2", "3"]
    assert client.dropped == 1


async def test_drop_newest_keeps_queued_frames():
    client = Client(FakeConnection(), queue_size=2, drop="newest")

    for payload in ("1", "2", "3"):
        client.offer(payload)

    assert _drain(client) == ["1", "2"]
    assert client.dropped == 1


async def test_writer_sends_in_order():
    conn = FakeConnection()
    client = Client(conn)
    client.start()

    for payload in ("a", "b", "c"):
        client.offer(payload)

    await wait_until(lambda: len(conn.sent) == 3)
    assert conn.sent == ["a", "b", "c"]
    assert conn.closed is False
    await client.close()
    assert conn.closed is True


async def test_write_failure_removes_client_from_registry():
    registry = ClientRegistry()
    conn = FakeConnection(fail=True)
    client = Client(conn, on_failure=registry.remove)
    await registry.add(client)
    client.start()

    client.offer("boom")

    await wait_until(lambda: client not in registry)
    assert client.failed is True
    assert client.closed is True
    assert conn.closed is True
    assert client.offer("later") is False


async def test_close_is_idempotent_and_rejects_offers():
    conn = FakeConnection()
    client = Client(conn)
    client.start()

    await client.close()
    await client.close()
    await asyncio.sleep(0)

    assert client.offer("x") is False
    assert client.name == "127.0.0.1:50000"


async def test_unexpected_send_error_still_drops_client():
    registry = ClientRegistry()
    conn = FakeConnection(error=RuntimeError("encoder exploded"))
    client = Client(conn, on_failure=registry.remove)
    await registry.add(client)
    client.start()

    client.offer("x")

    await wait_until(lambda: client not in registry)
    assert client.failed is True
    assert conn.closed is True

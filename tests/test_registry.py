import asyncio

from helpers import FakeClient

from tailcast.registry import ClientRegistry


async def test_add_is_idempotent():
    registry = ClientRegistry()
    client = FakeClient()

    assert await registry.add(client) is True
    assert await registry.add(client) is False
    assert len(registry) == 1
    assert client in registry


async def test_remove_closes_once_and_ignores_absent():
    registry = ClientRegistry()
    client = FakeClient()
    await registry.add(client)

    assert await registry.remove(client) is True
    assert await registry.remove(client) is False
    assert await registry.remove(FakeClient()) is False
    assert len(registry) == 0
    assert client.closes == 1


async def test_concurrent_removal_closes_exactly_once():
    registry = ClientRegistry()
    client = FakeClient()
    await registry.add(client)

    results = await asyncio.gather(*(registry.remove(client) for _ in range(5)))

    assert sorted(results) == [False, False, False, False, True]
    assert client.closes == 1
    assert len(registry) == 0


async def test_clients_are_distinct_by_identity():
    registry = ClientRegistry()
    a, b = FakeClient(), FakeClient()
    await registry.add(a)
    await registry.add(b)

    await registry.remove(a)

    assert a not in registry
    assert b in registry
    assert len(registry) == 1


async def test_close_all_empties_registry():
    registry = ClientRegistry()
    clients = [FakeClient() for _ in range(3)]
    for c in clients:
        await registry.add(c)

    await registry.close_all()

    assert len(registry) == 0
    assert [c.closes for c in clients] == [1, 1, 1]

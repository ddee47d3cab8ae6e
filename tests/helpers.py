import asyncio

from websockets.exceptions import ConnectionClosedError


class FakeClient:
    """registry / broadcaster 测试用的客户端"""

    def __init__(self, accept=True):
        self.accept = accept
        self.received = []
        self.closes = 0

    def offer(self, payload):
        if not self.accept:
            return False
        self.received.append(payload)
        return True

    async def close(self):
        self.closes += 1
        await asyncio.sleep(0)


class FakeConnection:
    def __init__(self, fail=False, error=None):
        self.fail = fail
        self.error = error
        self.sent = []
        self.closed = False
        self.remote_address = ("127.0.0.1", 50000)

    async def send(self, payload):
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        if self.fail or self.closed:
            raise ConnectionClosedError(None, None)
        self.sent.append(payload)

    async def close(self):
        self.closed = True


async def wait_until(predicate, timeout=2.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)

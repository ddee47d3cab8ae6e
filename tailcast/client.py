import asyncio
from typing import Awaitable, Callable, Optional, Union

from websockets.exceptions import ConnectionClosed

from .logger import get_logger

log = get_logger("client")

Payload = Union[str, bytes]


class Client:
    """一个 WebSocket 连接：有界发送队列 + 独立写协程，慢客户端只丢自己的消息"""

    def __init__(self, connection, queue_size: int = 100, drop: str = "oldest",
                 on_failure: Optional[Callable[["Client"], Awaitable]] = None):
        self.connection = connection
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.drop = drop
        self.dropped = 0
        self.failed = False
        self.closed = False
        self._on_failure = on_failure
        self._task: Optional[asyncio.Task] = None
        remote = getattr(connection, "remote_address", None)
        if isinstance(remote, tuple) and len(remote) >= 2:
            self.name = f"{remote[0]}:{remote[1]}"
        else:
            self.name = hex(id(self))

    def __repr__(self):
        return f"<Client {self.name}>"

    @property
    def alive(self) -> bool:
        return not (self.failed or self.closed)

    def start(self):
        self._task = asyncio.create_task(self._writer(), name=f"writer-{self.name}")

    def offer(self, payload: Payload) -> bool:
        """非阻塞入队；客户端已失效返回 False"""
        if not self.alive:
            return False
        try:
            self.queue.put_nowait(payload)
        except asyncio.QueueFull:
            self.dropped += 1
            if self.drop == "oldest":
                self.queue.get_nowait()
                self.queue.put_nowait(payload)
            log.warning("客户端 %s 接收过慢，累计丢弃 %d 条消息", self.name, self.dropped,
                        extra={"client": self.name})
        return True

    async def _writer(self):
        try:
            while True:
                payload = await self.queue.get()
                await self.connection.send(payload)
        except (ConnectionClosed, OSError) as e:
            log.info("客户端 %s 写入失败：%s", self.name, e)
        except Exception:
            log.exception("客户端 %s 发送异常", self.name)
        self.failed = True
        if self._on_failure is not None:
            await self._on_failure(self)

    async def close(self):
        if self.closed:
            return
        self.closed = True
        if self._task is not None and self._task is not asyncio.current_task():
            self._task.cancel()
        await self.connection.close()

import asyncio
from typing import Set

from .logger import get_logger

log = get_logger("registry")


class ClientRegistry:
    """
    在线客户端集合
    - 增删和整体遍历都在同一把锁里
    - 谁把客户端移出集合，谁负责关闭，保证只关闭一次
    """

    def __init__(self):
        self._clients: Set = set()
        self.lock = asyncio.Lock()

    def __len__(self):
        return len(self._clients)

    def __contains__(self, client):
        return client in self._clients

    def members(self) -> list:
        # 调用方需持有 lock
        return list(self._clients)

    def discard_locked(self, client) -> bool:
        if client not in self._clients:
            return False
        self._clients.discard(client)
        return True

    async def add(self, client) -> bool:
        async with self.lock:
            if client in self._clients:
                return False
            self._clients.add(client)
            total = len(self._clients)
        log.info("客户端已连接：%s，当前 %d 个", client, total)
        return True

    async def remove(self, client) -> bool:
        async with self.lock:
            removed = self.discard_locked(client)
            total = len(self._clients)
        if not removed:
            return False
        log.info("客户端已断开：%s，当前 %d 个", client, total)
        await client.close()
        return True

    async def close_all(self):
        async with self.lock:
            clients = self.members()
            self._clients.clear()
        for client in clients:
            await client.close()

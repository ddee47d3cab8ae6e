import asyncio
import codecs
from typing import Optional, Union

from .logger import get_logger
from .registry import ClientRegistry
from .watcher import Rewind, WatchError

log = get_logger("broadcaster")


class Broadcaster:
    def __init__(self, registry: ClientRegistry, channel: asyncio.Queue, frame: str = "text"):
        self.registry = registry
        self.channel = channel
        self.frame = frame
        self.published = 0
        # 文本帧：增量解码，避免多字节字符被切在两块之间
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def reset(self):
        self._decoder.reset()

    def encode(self, message: bytes) -> Union[str, bytes]:
        if self.frame == "binary":
            return message
        return self._decoder.decode(message)

    async def publish(self, message: bytes) -> int:
        """推给当前所有客户端，返回成功入队的数量"""
        payload = self.encode(message)
        if not payload:
            return 0
        delivered, failed = 0, []
        async with self.registry.lock:
            for client in self.registry.members():
                if client.offer(payload):
                    delivered += 1
                else:
                    self.registry.discard_locked(client)
                    failed.append(client)
        for client in failed:
            log.info("移除失效客户端：%s", client)
            await client.close()
        self.published += 1
        log.debug("第 %d 条消息已推送给 %d 个客户端", self.published, delivered)
        return delivered

    async def run(self) -> Optional[WatchError]:
        """按顺序消费 channel，收到 WatchError 时把它交还给调用方"""
        while True:
            item = await self.channel.get()
            if isinstance(item, WatchError):
                return item
            if isinstance(item, Rewind):
                # 文件从头读取，丢弃旧内容里残留的半个字符
                self.reset()
                continue
            await self.publish(item)

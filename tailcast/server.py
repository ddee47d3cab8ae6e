import asyncio
import json
from http import HTTPStatus
from typing import Optional
from urllib.parse import urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request

from .broadcaster import Broadcaster
from .client import Client
from .config import Config
from .logger import get_logger
from .registry import ClientRegistry
from .watcher import FileWatcher, make_trigger

log = get_logger("server")

HEALTH_PATH = "/health"
MAX_BACKOFF = 60.0


class TailServer:
    """监听 WebSocket，串起 文件监控 -> channel -> 广播"""

    def __init__(self, cfg: Config):
        self.cfg = cfg
        self.registry = ClientRegistry()
        self.channel: asyncio.Queue = asyncio.Queue(maxsize=cfg.channel_size)
        trigger = make_trigger(cfg.backend, cfg.watch_path, cfg.interval)
        self.watcher = FileWatcher(cfg.watch_path, trigger, cfg.on_truncate)
        self.broadcaster = Broadcaster(self.registry, self.channel, cfg.frame)
        self._server: Optional[Server] = None

    @property
    def port(self) -> int:
        return next(iter(self._server.sockets)).getsockname()[1]

    # --------------------------------------------------
    def _route(self, connection: ServerConnection, request: Request):
        path = urlsplit(request.path).path
        if path == self.cfg.ws_path:
            return None
        if path == HEALTH_PATH:
            body = json.dumps({
                "status": "ok",
                "clients": len(self.registry),
                "offset": self.watcher.offset,
                "path": self.watcher.path,
            })
            response = connection.respond(HTTPStatus.OK, body + "\n")
            del response.headers["Content-Type"]
            response.headers["Content-Type"] = "application/json"
            return response
        return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")

    async def _handle(self, connection: ServerConnection):
        client = Client(connection, self.cfg.client_queue_size, self.cfg.client_drop,
                        on_failure=self.registry.remove)
        await self.registry.add(client)
        client.start()
        try:
            # 只用来感知断开，客户端发来的内容直接丢弃
            while True:
                await connection.recv()
        except ConnectionClosed as e:
            log.debug("客户端 %s 连接关闭：%s", client, e)
        finally:
            await self.registry.remove(client)

    # --------------------------------------------------
    async def start(self):
        self._server = await serve(self._handle, self.cfg.host, self.cfg.port,
                                   process_request=self._route,
                                   logger=get_logger("ws"))
        log.info("服务已启动：ws://%s:%d%s，监控文件：%s",
                 self.cfg.host, self.port, self.cfg.ws_path, self.cfg.watch_path)

    async def stop(self):
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
        await self.registry.close_all()
        log.info("服务已关闭")

    async def pump(self):
        """运行文件监控和广播；监控失败时按 on_error 策略退出或退避重试"""
        attempts = 0
        while True:
            emitted = self.watcher.emitted
            watch_task = asyncio.create_task(self.watcher.run(self.channel), name="watcher")
            try:
                error = await self.broadcaster.run()
            except asyncio.CancelledError:
                watch_task.cancel()
                await asyncio.gather(watch_task, return_exceptions=True)
                raise
            await watch_task
            if self.watcher.emitted > emitted:
                attempts = 0
            if self.cfg.on_error != "retry" or attempts >= self.cfg.retry_max:
                raise error
            delay = min(self.cfg.retry_backoff * 2 ** attempts, MAX_BACKOFF)
            attempts += 1
            log.warning("%.1f 秒后重试文件监控（第 %d/%d 次）", delay, attempts, self.cfg.retry_max)
            await asyncio.sleep(delay)

    async def run(self):
        await self.start()
        try:
            await self.pump()
        finally:
            await self.stop()

"""
文件增长监控
- 启动时记录文件大小，只推送之后追加的内容
- 轮询或 watchdog 事件唤醒，读取新增字节
- 截断 / 轮转按策略处理，错误以 WatchError 交给上层决定
"""
import asyncio
import os
from typing import Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .logger import get_logger

log = get_logger("watcher")


class WatchError(Exception):
    def __init__(self, path: str, cause=None):
        super().__init__(f"{path}: {cause}")
        self.path = path
        self.cause = cause


class FileTruncated(WatchError):
    def __init__(self, path: str, size: int, offset: int):
        super().__init__(path, f"文件被截断 {offset} -> {size}")
        self.size = size
        self.offset = offset


class Rewind:
    """offset 回到 0（截断或轮转）后，下一条消息之前放入 channel"""

    def __init__(self, path: str):
        self.path = path


# --------------------------------------------------
class PollTrigger:
    """固定间隔轮询"""

    def __init__(self, interval: float = 1.0):
        self.interval = interval

    def start(self):
        pass

    def stop(self):
        pass

    async def wait(self):
        await asyncio.sleep(self.interval)


class _FileEventHandler(FileSystemEventHandler):
    def __init__(self, path: str, notify):
        super().__init__()
        self.path = path
        self.notify = notify

    def dispatch(self, event: FileSystemEvent):
        if event.is_directory:
            return
        paths = {os.fsdecode(event.src_path)}
        dest = getattr(event, "dest_path", "")
        if dest:
            paths.add(os.fsdecode(dest))
        if self.path in {os.path.abspath(p) for p in paths}:
            log.debug("RAW_EVENT: %s %s", event.event_type, event.src_path)
            self.notify()


class WatchdogTrigger:
    """watchdog 文件事件唤醒，interval 作为兜底轮询"""

    def __init__(self, path: str, interval: float = 1.0):
        self.path = os.path.abspath(path)
        self.interval = interval
        self._event: Optional[asyncio.Event] = None
        self._observer: Optional[Observer] = None

    def start(self):
        loop = asyncio.get_running_loop()
        self._event = asyncio.Event()
        # watchdog 线程里的事件送回主事件循环
        handler = _FileEventHandler(self.path, lambda: loop.call_soon_threadsafe(self._event.set))
        observer = Observer()
        observer.schedule(handler, os.path.dirname(self.path), recursive=False)
        observer.start()
        self._observer = observer

    def stop(self):
        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    async def wait(self):
        try:
            await asyncio.wait_for(self._event.wait(), self.interval)
        except asyncio.TimeoutError:
            pass
        self._event.clear()


def make_trigger(backend: str, path: str, interval: float):
    if backend == "watchdog":
        return WatchdogTrigger(path, interval)
    return PollTrigger(interval)


# --------------------------------------------------
class FileWatcher:
    def __init__(self, path: str, trigger=None, on_truncate: str = "reset"):
        self.path = os.path.abspath(path)
        self.trigger = trigger or PollTrigger()
        self.on_truncate = on_truncate
        self.offset: Optional[int] = None
        self.emitted = 0
        self.generation = 0
        self.ready = asyncio.Event()
        self._file = None
        self._inode: Optional[int] = None

    def _open_file(self):
        fh = open(self.path, "rb")
        return fh, os.fstat(fh.fileno())

    def open(self):
        fh, st = self._open_file()
        if self.offset is None:
            self.offset = st.st_size
        elif st.st_ino != self._inode or st.st_size < self.offset:
            log.warning("重新打开的文件已变化，从头读取：%s", self.path)
            self._rewind()
        self.close()
        self._file, self._inode = fh, st.st_ino

    def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    def _read_to(self, size: int) -> bytes:
        if size <= self.offset:
            return b""
        self._file.seek(self.offset)
        data = self._file.read(size - self.offset)
        self.offset += len(data)
        return data

    def _rewind(self):
        self.offset = 0
        self.generation += 1

    def read_growth(self) -> bytes:
        """读取上次偏移之后新增的字节，没有增长返回 b''"""
        if self._file is None:
            self.open()
        st = os.stat(self.path)
        if st.st_ino != self._inode:
            # 先读完旧文件轮转前追加的内容，再切到新文件
            tail = self._read_to(os.fstat(self._file.fileno()).st_size)
            if tail:
                return tail
            log.warning("检测到文件轮转，从头读取新文件：%s", self.path)
            fh, st = self._open_file()
            self.close()
            self._file, self._inode = fh, st.st_ino
            self._rewind()
        size = st.st_size
        if size < self.offset:
            if self.on_truncate == "fatal":
                raise FileTruncated(self.path, size, self.offset)
            log.warning("文件被截断（%d -> %d），从头读取：%s", self.offset, size, self.path)
            self._rewind()
        return self._read_to(size)

    async def next_growth(self) -> bytes:
        while True:
            data = self.read_growth()
            if data:
                self.emitted += 1
                log.debug("新增 %d 字节，偏移 %d", len(data), self.offset)
                return data
            await self.trigger.wait()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        return await self.next_growth()

    async def run(self, channel: asyncio.Queue):
        """把每次增长放进 channel；失败时放入 WatchError 后返回"""
        generation = self.generation
        try:
            self.open()
            self.trigger.start()
            log.info("开始监控文件：%s（起始偏移 %d）", self.path, self.offset)
            self.ready.set()
            async for message in self:
                if self.generation != generation:
                    generation = self.generation
                    await channel.put(Rewind(self.path))
                await channel.put(message)
        except (OSError, WatchError) as e:
            error = e if isinstance(e, WatchError) else WatchError(self.path, e)
            log.error("文件监控失败：%s", error)
            await channel.put(error)
        finally:
            self.trigger.stop()
            self.close()

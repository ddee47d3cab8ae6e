import os, logging, time
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

import coloredlogs
import pytz

ROOT = "tailcast"
FMT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
FILE_FMT = "%(asctime)s [%(levelname)s] %(name)s %(funcName)s:%(lineno)d | %(message)s"
DATEFMT = "%Y-%m-%d %H:%M:%S"


class SamplingFilter(logging.Filter):
    """同一客户端的日志在窗口期内只放行第一条"""

    def __init__(self, window: float = 60.0):
        super().__init__()
        self.window = window
        self._last = {}

    def filter(self, record):
        client = getattr(record, "client", None)
        if client is None:
            return True
        now = time.monotonic()
        last = self._last.get(client)
        if last is None or now - last > self.window:
            self._last[client] = now
            return True
        return False


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{ROOT}.{name}")


def setup_logging(cfg) -> logging.Logger:
    logger = logging.getLogger(ROOT)
    for h in list(logger.handlers):
        logger.removeHandler(h)
        h.close()
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    tz = pytz.timezone(cfg.log_timezone)
    logging.Formatter.converter = lambda *args: datetime.now(tz).timetuple()

    coloredlogs.install(level=cfg.log_level, logger=logger, fmt=FMT, datefmt=DATEFMT)
    # websockets 在 DEBUG 下逐帧打日志
    get_logger("ws").setLevel(max(logging.getLevelName(cfg.log_level), logging.INFO))
    if cfg.log_file:
        os.makedirs(Path(cfg.log_file).parent, exist_ok=True)
        file_handler = RotatingFileHandler(cfg.log_file,
                                           maxBytes=cfg.log_max_bytes,
                                           backupCount=cfg.log_backup_count,
                                           encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_FMT, datefmt=DATEFMT))
        logger.addHandler(file_handler)

    sampler = SamplingFilter()
    for h in logger.handlers:
        h.addFilter(sampler)
    return logger

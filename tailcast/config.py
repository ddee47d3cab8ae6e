import os
from typing import Any, Dict, Optional

import yaml

from .logger import get_logger

log = get_logger("config")

ENV_CONFIG = "TAILCAST_CONFIG"
DEFAULT_CONFIG = "config/config.yaml"

BACKENDS = ("polling", "watchdog")
TRUNCATE_POLICIES = ("reset", "fatal")
ERROR_POLICIES = ("exit", "retry")
FRAMES = ("text", "binary")
DROP_POLICIES = ("oldest", "newest")
LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Config:
    def __init__(self, cfg: Optional[Dict[str, Any]] = None):
        cfg = cfg or {}
        watch = cfg.get("watch") or {}
        self.watch_path: str = watch.get("path", "/test.log")
        self.backend: str = watch.get("backend", "polling")
        self.interval: float = float(watch.get("interval_seconds", 1.0))
        self.on_truncate: str = watch.get("on_truncate", "reset")
        self.on_error: str = watch.get("on_error", "exit")
        self.retry_max: int = int(watch.get("retry_max", 5))
        self.retry_backoff: float = float(watch.get("retry_backoff_seconds", 1.0))

        server = cfg.get("server") or {}
        self.host: str = server.get("host", "0.0.0.0")
        self.port: int = int(server.get("port", 8080))
        self.ws_path: str = server.get("ws_path", "/ws")
        self.frame: str = server.get("frame", "text")
        self.channel_size: int = int(server.get("channel_size", 64))
        self.client_queue_size: int = int(server.get("client_queue_size", 100))
        self.client_drop: str = server.get("client_drop", "oldest")

        log_cfg = cfg.get("log") or {}
        self.log_level: str = str(log_cfg.get("level", "INFO")).upper()
        self.log_file: Optional[str] = log_cfg.get("file_path")
        self.log_max_bytes: int = int(log_cfg.get("max_bytes", 10 * 1024 * 1024))
        self.log_backup_count: int = int(log_cfg.get("backup_count", 5))
        self.log_timezone: str = log_cfg.get("timezone", "UTC")

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Config":
        """读取 YAML 配置；未指定路径时依次尝试环境变量和默认位置"""
        explicit = path or os.environ.get(ENV_CONFIG)
        path = explicit or DEFAULT_CONFIG
        if not os.path.exists(path):
            if explicit:
                log.error("配置文件不存在：%s", path)
                raise FileNotFoundError(path)
            log.info("未找到配置文件，使用默认配置")
            return cls()
        with open(path, encoding="utf-8") as f:
            return cls(yaml.safe_load(f) or {})

    def validate(self):
        for name, value, allowed in (
            ("watch.backend", self.backend, BACKENDS),
            ("watch.on_truncate", self.on_truncate, TRUNCATE_POLICIES),
            ("watch.on_error", self.on_error, ERROR_POLICIES),
            ("server.frame", self.frame, FRAMES),
            ("server.client_drop", self.client_drop, DROP_POLICIES),
            ("log.level", self.log_level, LEVELS),
        ):
            if value not in allowed:
                raise ValueError(f"{name} 只能是 {'/'.join(allowed)}，当前为 {value!r}")
        if not self.watch_path:
            raise ValueError("watch.path 不能为空")
        if self.interval <= 0 or self.retry_backoff <= 0:
            raise ValueError("watch.interval_seconds / retry_backoff_seconds 必须大于 0")
        if self.retry_max < 0:
            raise ValueError("watch.retry_max 不能为负数")
        if self.channel_size <= 0 or self.client_queue_size <= 0:
            raise ValueError("server.channel_size / client_queue_size 必须大于 0")
        if not 0 <= self.port <= 65535:
            raise ValueError(f"server.port 超出范围：{self.port}")
        if not self.ws_path.startswith("/"):
            raise ValueError(f"server.ws_path 必须以 / 开头：{self.ws_path}")
        if self.log_file and os.path.abspath(self.log_file) == os.path.abspath(self.watch_path):
            raise ValueError(f"log.file_path 不能是被监控的文件：{self.log_file}")

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
tailcast
- 跟踪一个持续增长的日志文件
- 把新增内容实时推送给所有 WebSocket 客户端
"""

import argparse
import asyncio
import sys
from typing import List, Optional

from .config import Config
from .logger import setup_logging
from .server import TailServer
from .watcher import WatchError


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="tailcast", description="通过 WebSocket 实时推送日志文件新增内容")
    parser.add_argument("-c", "--config", help="YAML 配置文件（默认读取 $TAILCAST_CONFIG 或 config/config.yaml）")
    parser.add_argument("--file", help="要监控的文件，覆盖 watch.path")
    parser.add_argument("--host", help="监听地址，覆盖 server.host")
    parser.add_argument("--port", type=int, help="监听端口，覆盖 server.port")
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> Config:
    cfg = Config.load(args.config)
    if args.file:
        cfg.watch_path = args.file
    if args.host:
        cfg.host = args.host
    if args.port is not None:
        cfg.port = args.port
    cfg.validate()
    return cfg


def main(argv: Optional[List[str]] = None) -> int:
    cfg = load_config(parse_args(argv))
    logger = setup_logging(cfg)
    try:
        asyncio.run(TailServer(cfg).run())
    except KeyboardInterrupt:
        logger.info("收到退出信号，已停止")
    except WatchError as e:
        logger.critical("文件监控失败，进程退出：%s", e)
        return 1
    except OSError as e:
        logger.critical("无法监听 %s:%d：%s", cfg.host, cfg.port, e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())

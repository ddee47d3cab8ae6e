from .broadcaster import Broadcaster
from .client import Client
from .config import Config
from .registry import ClientRegistry
from .server import TailServer
from .watcher import (FileTruncated, FileWatcher, PollTrigger, Rewind,
                      WatchdogTrigger, WatchError)

__version__ = "0.1.0"

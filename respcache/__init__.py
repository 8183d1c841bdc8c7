"""
RESP-Cache: In-Memory Key-Value Store

A small, self-hosted key-value server built with Python asyncio. It speaks
a subset of the Redis wire protocol (RESP) over raw TCP sockets, with
per-key expiration, password authentication and publish/subscribe.
"""

from .client import RespClient
from .manager import ServerAlreadyRunning, ServerManager, ServerNotRunning
from .network.tcp_server import RespServer

__version__ = "1.0.0"

__all__ = [
    "RespClient",
    "RespServer",
    "ServerAlreadyRunning",
    "ServerManager",
    "ServerNotRunning",
]

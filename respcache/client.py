"""
Blocking RESP client.

Small socket client speaking the same protocol as the server. The host uses
it for health checks, and the interactive script in ``scripts/client.py``
uses it too.
"""

import logging
import socket
from typing import Any, List, Optional

from .config.settings import settings
from .protocol.commands import Array, BulkString, Error, Integer, Reply, SimpleString
from .protocol.errors import ReplyError
from .protocol.parser import RespParser

logger = logging.getLogger(__name__)


class RespClient:
    """
    Simple TCP client for RESP-Cache.

    Usage:
        with RespClient('127.0.0.1', 6379) as client:
            client.set('key', 'value', px=5000)
            client.get('key')  # 'value'

    Error replies from the server are raised as ReplyError; socket failures
    surface as ConnectionError / OSError.
    """

    def __init__(self, host: str = "127.0.0.1", port: int = None, timeout: float = None):
        self.host = host
        self.port = port if port is not None else settings.PORT
        self.timeout = timeout if timeout is not None else settings.CLIENT_TIMEOUT
        self.socket: Optional[socket.socket] = None
        self.parser = RespParser()
        self._buffer = bytearray()

    def connect(self) -> None:
        """Connect to the server."""
        self.socket = socket.create_connection((self.host, self.port), timeout=self.timeout)
        self._buffer.clear()
        logger.info(f"Connected to server at {self.host}:{self.port}")

    def close(self) -> None:
        """Disconnect from the server."""
        if self.socket is None:
            return
        try:
            self.socket.close()
        finally:
            self.socket = None
            logger.info("Disconnected from server")

    def is_connected(self) -> bool:
        return self.socket is not None and self.socket.fileno() != -1

    def execute_command(self, *args: Optional[str]) -> Any:
        """
        Send one command and return its decoded reply.

        Simple strings and bulk strings come back as str (None for null),
        integers as int, arrays as lists.

        Raises:
            ReplyError: the server answered with an error reply
            ConnectionError: not connected, or the server closed the socket
        """
        if self.socket is None:
            raise ConnectionError("not connected")
        self.socket.sendall(self.parser.format_request(*args))
        return self.read_reply()

    def read_reply(self) -> Any:
        """Block until the next reply (or pub/sub notification) arrives."""
        return self._to_python(self._read_frame())

    def _read_frame(self) -> Reply:
        while True:
            parsed = self.parser.parse_reply(self._buffer)
            if parsed is not None:
                reply, consumed = parsed
                del self._buffer[:consumed]
                return reply
            chunk = self.socket.recv(settings.READ_BUFFER_SIZE)
            if not chunk:
                raise ConnectionError("connection closed by server")
            self._buffer += chunk

    def _to_python(self, reply: Reply) -> Any:
        if isinstance(reply, Error):
            raise ReplyError(reply.message)
        if isinstance(reply, (SimpleString, BulkString, Integer)):
            return reply.value
        if isinstance(reply, Array):
            return [self._to_python(item) for item in reply.items]
        raise TypeError(f"unexpected reply {reply!r}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def ping(self) -> str:
        return self.execute_command("PING")

    def auth(self, password: str) -> bool:
        return self.execute_command("AUTH", password) == "OK"

    def set(self, key: str, value: str, px: Optional[int] = None) -> bool:
        if px is not None:
            return self.execute_command("SET", key, value, "PX", str(px)) == "OK"
        return self.execute_command("SET", key, value) == "OK"

    def get(self, key: str) -> Optional[str]:
        return self.execute_command("GET", key)

    def exists(self, key: str) -> bool:
        return self.execute_command("EXISTS", key) == 1

    def delete(self, key: str) -> bool:
        return self.execute_command("DEL", key) == 1

    def keys(self, pattern: str = "*") -> List[str]:
        return self.execute_command("KEYS", pattern)

    def publish(self, channel: str, message: str) -> int:
        return self.execute_command("PUBLISH", channel, message)

    def subscribe(self, channel: str) -> int:
        """Subscribe and return the connection's subscription count."""
        _, _, count = self.execute_command("SUBSCRIBE", channel)
        return count

    def unsubscribe(self, channel: Optional[str] = None) -> int:
        if channel is None:
            _, _, count = self.execute_command("UNSUBSCRIBE")
        else:
            _, _, count = self.execute_command("UNSUBSCRIBE", channel)
        return count

    def quit(self) -> None:
        try:
            self.execute_command("QUIT")
        finally:
            self.close()

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

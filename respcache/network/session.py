"""
Per-connection session state.

A Session owns its connection's StreamWriter. Every frame written to the
client, whether a command reply or a pub/sub notification pushed by another
connection, goes through ``send()`` and its lock, so frames never interleave
on the wire.
"""

import asyncio
import logging
from asyncio import StreamWriter
from typing import Set

from ..protocol.commands import Reply
from ..protocol.parser import RespParser

logger = logging.getLogger(__name__)


class Session:
    """
    Server-side state for one connected client.

    Attributes:
        id: Unique per server lifetime
        authenticated: Only meaningful when the server has a password
        subscribed_channels: Channels this session currently listens on
        closing: Set once the session should stop reading (QUIT)
    """

    def __init__(self, session_id: int, writer: StreamWriter, parser: RespParser):
        self.id = session_id
        self.authenticated = False
        self.subscribed_channels: Set[str] = set()
        self.closing = False
        self.peer = writer.get_extra_info('peername')

        self._writer = writer
        self._parser = parser
        self._write_lock = asyncio.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed or self._writer.is_closing()

    async def send(self, reply: Reply) -> None:
        """
        Write one complete frame to the client.

        Raises:
            ConnectionResetError: the session is already closed
            OSError: the socket write failed
        """
        data = self._parser.format_response(reply)
        async with self._write_lock:
            if self.closed:
                raise ConnectionResetError(f"session {self.id} is closed")
            self._writer.write(data)
            await self._writer.drain()

    def request_close(self) -> None:
        """Stop the session after the current reply has been written."""
        self.closing = True

    async def close(self) -> None:
        """Close the underlying connection."""
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        try:
            await self._writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            logger.debug(f"Session {self.id} closed with error: {exc}")

    def __repr__(self) -> str:
        return f"<Session id={self.id} peer={self.peer}>"

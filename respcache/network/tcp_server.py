"""
Async TCP Server Module

This module implements the asynchronous RESP server.

Each accepted connection runs in its own asyncio task (one Session per
connection) that reads a frame, dispatches it, writes the reply, and only
then reads the next frame. The asyncio.Server accept loop is shared.
"""

import asyncio
import itertools
import logging
from asyncio import StreamReader, StreamWriter
from typing import Dict, Optional, Set

from ..auth.gate import AuthGate
from ..cache.store import KVStore
from ..config.settings import settings
from ..protocol.commands import Error
from ..protocol.errors import ProtocolError
from ..protocol.parser import MAX_LINE_LENGTH, RespParser
from ..pubsub.registry import SubscriptionRegistry
from .dispatcher import CommandDispatcher
from .session import Session

logger = logging.getLogger(__name__)


class RespServer:
    """
    Asynchronous TCP server speaking the RESP protocol.

    Features:
    - Non-blocking I/O with asyncio, one task per connection
    - Shared KVStore and SubscriptionRegistry across all connections
    - Optional password authentication
    - Forceful shutdown: stop() terminates every open session

    Usage:
        server = RespServer(host='127.0.0.1', port=6379, password='secret')
        await server.start()  # Runs forever

    Attributes:
        host: Server bind address
        port: Server port number (updated to the bound port when 0 is given)
        store: The KVStore shared by all connections
        registry: The SubscriptionRegistry shared by all connections
        auth: The AuthGate holding the configured password
    """

    def __init__(
            self,
            host: str = None,
            port: int = None,
            password: str = None,
            store: KVStore = None,
            max_connections: int = None,
    ):
        self.host = host if host is not None else settings.HOST
        self.port = port if port is not None else settings.PORT
        self.max_connections = (
            max_connections if max_connections is not None else settings.MAX_CONNECTIONS
        )
        self.store = store if store is not None else KVStore()
        self.registry = SubscriptionRegistry()
        self.auth = AuthGate(password if password is not None else settings.PASSWORD)
        self.parser = RespParser()
        self.dispatcher = CommandDispatcher(self.store, self.registry, self.auth)

        # Server state
        self._server: Optional[asyncio.Server] = None
        self._running = False
        self._session_ids = itertools.count(1)
        self._sessions: Dict[int, Session] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._connection_count = 0
        self._total_requests = 0

    async def handle_client(self, reader: StreamReader, writer: StreamWriter) -> None:
        """
        Handle a single client connection until it closes.

        The session ends on client disconnect, QUIT, a socket error, a
        ProtocolError (no reply is attempted since frame boundaries are
        lost), or server shutdown. In every case the session is dropped from
        the registry and its socket is closed.
        """
        if len(self._sessions) >= self.max_connections:
            await self._reject(writer)
            return

        session = Session(next(self._session_ids), writer, self.parser)
        task = asyncio.current_task()
        self._sessions[session.id] = session
        self._tasks.add(task)
        self._connection_count += 1
        logger.debug(f"Client connected: {session.peer} (session {session.id})")

        try:
            await self._serve(session, reader)
        except ProtocolError as exc:
            logger.warning(f"Protocol error from {session.peer}, closing: {exc}")
        except (ConnectionError, OSError) as exc:
            logger.debug(f"Connection lost: {session.peer}: {exc}")
        except asyncio.CancelledError:
            # stop() cancels every session task
            logger.debug(f"Session {session.id} terminated by server shutdown")
        except Exception as exc:  # Log unexpected errors but keep server alive
            logger.exception(f"Error handling client {session.peer}: {exc}")
        finally:
            self.registry.drop_session(session)
            self._sessions.pop(session.id, None)
            self._tasks.discard(task)
            await session.close()

    async def _serve(self, session: Session, reader: StreamReader) -> None:
        while not session.closing:
            request = await self.parser.read_request(reader)
            if request is None:
                logger.debug(f"Client disconnected: {session.peer}")
                return
            self._total_requests += 1

            reply = await self.dispatcher.dispatch(session, request)
            await session.send(reply)

    async def _reject(self, writer: StreamWriter) -> None:
        logger.warning(
            f"Rejecting {writer.get_extra_info('peername')}: "
            f"max connections ({self.max_connections}) reached"
        )
        try:
            writer.write(self.parser.format_response(Error("ERR max number of clients reached")))
            await writer.drain()
        except (ConnectionError, OSError) as exc:
            logger.debug(f"Could not send rejection: {exc}")
        finally:
            writer.close()
        try:
            await writer.wait_closed()
        except (ConnectionError, OSError) as exc:
            logger.debug(f"Rejected connection closed with error: {exc}")

    async def bind(self) -> None:
        """
        Bind the listening socket and start accepting connections.

        Returns as soon as the socket is listening.

        Raises:
            OSError: the address is unavailable (e.g. port already in use)
        """
        if self._server is not None:
            return

        self._server = await asyncio.start_server(
            self.handle_client, self.host, self.port, limit=MAX_LINE_LENGTH
        )
        self._running = True

        sockets = self._server.sockets or []
        if sockets and self.port == 0:
            self.port = sockets[0].getsockname()[1]
        addrs = ', '.join(str(sock.getsockname()) for sock in sockets)
        logger.info(f"Serving on {addrs}")

    async def start(self) -> None:
        """
        Start the server and serve until cancelled or stopped.

        Example:
            server = RespServer(port=6379)
            asyncio.run(server.start())
        """
        await self.bind()
        server = self._server
        try:
            await server.serve_forever()
        except asyncio.CancelledError:
            # Expected during shutdown
            logger.debug("Server start cancelled")
        finally:
            self._running = False

    async def stop(self) -> None:
        """
        Stop the server.

        Closes the listener, terminates every open session without waiting
        for clients to disconnect, and releases the store and registry.
        """
        if self._server is None:
            return

        self._running = False
        server, self._server = self._server, None
        server.close()

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await server.wait_closed()
        self.registry.clear()
        self.store.clear()
        logger.info(f"Server on port {self.port} stopped")

    def is_running(self) -> bool:
        """Check if the server is currently running."""
        return self._running

    def get_stats(self) -> dict:
        """
        Get server statistics.

        Returns:
            Dictionary with server stats including connection counts,
            request counts, store and pub/sub statistics.
        """
        return {
            "running": self._running,
            "host": self.host,
            "port": self.port,
            "active_connections": len(self._sessions),
            "total_connections": self._connection_count,
            "total_requests": self._total_requests,
            "auth_required": self.auth.requires_auth(),
            "store_stats": self.store.get_stats(),
            "pubsub_stats": self.registry.get_stats(),
        }


async def run_server(host: str = None, port: int = None, password: str = None) -> None:
    """
    Convenience function to create and run the server.

    Usage:
        asyncio.run(run_server(port=6379))
    """
    server = RespServer(host=host, port=port, password=password)

    try:
        await server.start()
    except asyncio.CancelledError:
        logger.info("Server shutdown requested")
    finally:
        await server.stop()

"""
Host-facing server lifecycle.

ServerManager wraps RespServer behind a blocking start/stop API so an
application that is not itself asyncio-based can embed the server. The
event loop runs in a daemon thread owned by the manager.
"""

import asyncio
import logging
import threading
from typing import Dict, Optional

from .client import RespClient
from .config.settings import settings
from .network.tcp_server import RespServer
from .protocol.errors import RespCacheError

logger = logging.getLogger(__name__)

# port -> manager currently serving it in this process
_live_ports: Dict[int, "ServerManager"] = {}
_ports_lock = threading.Lock()


class ServerAlreadyRunning(RespCacheError):
    """Another manager in this process already serves the port."""


class ServerNotRunning(RespCacheError):
    """The operation needs a running server."""


class ServerManager:
    """
    Start, stop and probe an embedded RESP-Cache server.

    Usage:
        manager = ServerManager(port=6379, password="secret")
        manager.start()
        client = manager.get_client()   # connected and authenticated
        client.ping()                   # 'PONG'
        manager.stop()

    At most one live manager may serve a given port in a process.
    """

    def __init__(
            self,
            host: str = None,
            port: int = None,
            password: str = None,
            max_connections: int = None,
    ):
        self.host = host if host is not None else settings.HOST
        self.port = port if port is not None else settings.PORT
        self.password = password if password is not None else settings.PASSWORD
        self.max_connections = max_connections

        self._server: Optional[RespServer] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._client: Optional[RespClient] = None
        self._state_lock = threading.Lock()
        self._startup_error: Optional[BaseException] = None

    def start(self, timeout: float = 5.0) -> None:
        """
        Bind the server and serve in a background thread.

        Blocks until the listening socket is bound.

        Raises:
            ServerAlreadyRunning: this process already serves the port
            OSError: the port could not be bound
            TimeoutError: binding took longer than ``timeout``
        """
        if self.is_started():
            return

        with _ports_lock:
            if self.port and self.port in _live_ports:
                raise ServerAlreadyRunning(f"port {self.port} is already served")
            if self.port:
                _live_ports[self.port] = self

        self._startup_error = None
        self._server = RespServer(
            host=self.host,
            port=self.port,
            password=self.password,
            max_connections=self.max_connections,
        )
        ready = threading.Event()
        abandoned = threading.Event()
        self._thread = threading.Thread(
            target=self._run,
            args=(self._server, ready, abandoned),
            name=f"resp-cache-{self.port}",
            daemon=True,
        )
        self._thread.start()

        ready.wait(timeout)
        with self._state_lock:
            if not ready.is_set():
                abandoned.set()
        if abandoned.is_set():
            # The thread shuts the server down itself if bind() ever completes
            self._thread = None
            self._server = None
            self._release_port()
            raise TimeoutError(f"server did not bind within {timeout}s")
        if self._startup_error is not None:
            self._thread.join(timeout)
            self._thread = None
            self._server = None
            self._release_port()
            raise self._startup_error

        if self.port != self._server.port:
            self.port = self._server.port
            with _ports_lock:
                _live_ports[self.port] = self
        logger.info(f"Server started on port {self.port}")

    def _run(self, server: RespServer, ready: threading.Event, abandoned: threading.Event) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            try:
                loop.run_until_complete(server.bind())
            except OSError as exc:
                logger.error(f"Failed to start server on port {server.port}: {exc}")
                with self._state_lock:
                    if not abandoned.is_set():
                        self._startup_error = exc
                        ready.set()
                return

            with self._state_lock:
                if not abandoned.is_set():
                    self._loop = loop
                    ready.set()
            if abandoned.is_set():
                logger.warning(f"Server on port {server.port} bound after start() gave up, stopping it")
                loop.run_until_complete(server.stop())
                return
            loop.run_forever()
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()
            with self._state_lock:
                if self._loop is loop:
                    self._loop = None

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the server, terminating every open connection."""
        if not self.is_started():
            return

        if self._client is not None:
            try:
                self._client.close()
            except OSError as exc:
                logger.debug(f"Error closing health client: {exc}")
            self._client = None

        loop = self._loop
        future = asyncio.run_coroutine_threadsafe(self._server.stop(), loop)
        try:
            future.result(timeout)
        finally:
            loop.call_soon_threadsafe(loop.stop)
            self._thread.join(timeout)
            self._thread = None
            self._server = None
            self._release_port()
        logger.info("Server stopped")

    def _release_port(self) -> None:
        with _ports_lock:
            for port, manager in list(_live_ports.items()):
                if manager is self:
                    del _live_ports[port]

    def is_started(self) -> bool:
        """True while this manager owns a running server."""
        return self._server is not None and self._server.is_running()

    def is_running(self) -> bool:
        """
        True if a server answers on the configured port.

        This also detects a server started elsewhere by sending it a PING.
        """
        if self.is_started():
            return True
        probe_host = "127.0.0.1" if self.host in ("0.0.0.0", "") else self.host
        try:
            with RespClient(probe_host, self.port, timeout=1.0) as probe:
                probe.ping()
            return True
        except (OSError, RespCacheError):
            return False

    def get_client(self) -> RespClient:
        """
        Return a connected in-process client, authenticated if needed.

        Raises:
            ServerNotRunning: start() has not been called
        """
        if not self.is_started():
            raise ServerNotRunning("server is not running")
        if self._client is None or not self._client.is_connected():
            client_host = "127.0.0.1" if self.host in ("0.0.0.0", "") else self.host
            client = RespClient(client_host, self.port)
            client.connect()
            if self.password:
                client.auth(self.password)
            self._client = client
        return self._client

    def get_stats(self) -> dict:
        if self._server is None:
            return {"running": False, "port": self.port}
        return self._server.get_stats()

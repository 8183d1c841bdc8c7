"""
Pytest Configuration and Fixtures

This module provides shared fixtures and configuration for all tests.
"""

import asyncio
import itertools
import socket
import pytest
import pytest_asyncio
from contextlib import closing
from typing import AsyncGenerator

from respcache.auth.gate import AuthGate
from respcache.cache.store import KVStore
from respcache.network.dispatcher import CommandDispatcher
from respcache.network.session import Session
from respcache.network.tcp_server import RespServer
from respcache.protocol.commands import Reply
from respcache.protocol.parser import RespParser
from respcache.pubsub.registry import SubscriptionRegistry


def find_free_port() -> int:
    """Find an available port for testing."""
    with closing(socket.socket(socket.AF_INET, socket.SOCK_STREAM)) as s:
        s.bind(('', 0))
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        return s.getsockname()[1]


# ============================================================================
# Store / Protocol Fixtures
# ============================================================================

@pytest.fixture
def store() -> KVStore:
    """Create a fresh KVStore instance."""
    return KVStore()


@pytest.fixture
def parser() -> RespParser:
    """Create a RespParser instance."""
    return RespParser()


@pytest.fixture
def registry() -> SubscriptionRegistry:
    """Create an empty SubscriptionRegistry."""
    return SubscriptionRegistry()


# ============================================================================
# Session Fixtures
# ============================================================================

class FakeWriter:
    """
    Stand-in for asyncio.StreamWriter that records everything written.

    With ``fail=True`` every write raises ConnectionResetError, like a
    peer that has gone away.
    """

    def __init__(self, fail: bool = False):
        self.data = bytearray()
        self.closed = False
        self.fail = fail

    def get_extra_info(self, name, default=None):
        if name == 'peername':
            return ('127.0.0.1', 50000)
        return default

    def is_closing(self) -> bool:
        return self.closed

    def write(self, data: bytes) -> None:
        if self.fail:
            raise ConnectionResetError("broken pipe")
        self.data += data

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        self.closed = True

    async def wait_closed(self) -> None:
        pass


@pytest.fixture
def session_factory(parser: RespParser):
    """
    Factory fixture creating Sessions backed by FakeWriters.

    Usage:
        def test_something(session_factory):
            session = session_factory()
            broken = session_factory(fail=True)
    """
    ids = itertools.count(1)

    def factory(fail: bool = False) -> Session:
        return Session(next(ids), FakeWriter(fail=fail), parser)
    return factory


@pytest.fixture
def dispatcher(store: KVStore, registry: SubscriptionRegistry) -> CommandDispatcher:
    """Dispatcher with auth disabled."""
    return CommandDispatcher(store, registry, AuthGate())


@pytest.fixture
def secure_dispatcher(store: KVStore, registry: SubscriptionRegistry) -> CommandDispatcher:
    """Dispatcher whose server password is 'secret'."""
    return CommandDispatcher(store, registry, AuthGate("secret"))


# ============================================================================
# Server Fixtures
# ============================================================================

@pytest.fixture
def server_port() -> int:
    """Get a free port for server testing."""
    return find_free_port()


async def _run_server(srv: RespServer) -> AsyncGenerator[RespServer, None]:
    server_task = asyncio.create_task(srv.start())

    # Wait for server to be ready
    await asyncio.sleep(0.1)

    yield srv

    await srv.stop()
    server_task.cancel()
    try:
        await server_task
    except asyncio.CancelledError:
        pass


@pytest_asyncio.fixture
async def server(server_port: int) -> AsyncGenerator[RespServer, None]:
    """
    Create and start a server instance (no password) for testing.

    This fixture:
    1. Creates a RespServer on a random free port
    2. Starts it in a background task
    3. Yields the server for testing
    4. Cleans up after the test
    """
    async for srv in _run_server(RespServer(host='127.0.0.1', port=server_port, password="")):
        yield srv


@pytest_asyncio.fixture
async def secure_server(server_port: int) -> AsyncGenerator[RespServer, None]:
    """Same as ``server`` but requiring AUTH with password 'secret'."""
    async for srv in _run_server(
        RespServer(host='127.0.0.1', port=server_port, password="secret")
    ):
        yield srv


# ============================================================================
# Client Fixtures
# ============================================================================

class AsyncClient:
    """
    Helper class for testing server interactions.

    Provides a simple async context manager interface for
    sending commands and receiving decoded replies.

    Usage:
        async with AsyncClient('127.0.0.1', 6379) as client:
            reply = await client.send_command("SET", "key", "value")
            assert reply == SimpleString("OK")
    """

    def __init__(self, host: str, port: int):
        self.host = host
        self.port = port
        self.reader = None
        self.writer = None
        self.parser = RespParser()
        self._buffer = bytearray()

    async def connect(self) -> None:
        """Establish connection to server."""
        self.reader, self.writer = await asyncio.open_connection(
            self.host, self.port
        )

    async def disconnect(self) -> None:
        """Close connection to server."""
        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass

    async def send_raw(self, data: bytes) -> None:
        """Write bytes to the server as-is."""
        self.writer.write(data)
        await self.writer.drain()

    async def read_reply(self, timeout: float = 2.0) -> Reply:
        """Read the next complete reply (or pub/sub notification)."""
        while True:
            parsed = self.parser.parse_reply(self._buffer)
            if parsed is not None:
                reply, consumed = parsed
                del self._buffer[:consumed]
                return reply
            chunk = await asyncio.wait_for(self.reader.read(4096), timeout)
            if not chunk:
                raise ConnectionError("connection closed by server")
            self._buffer += chunk

    async def send_command(self, *args) -> Reply:
        """
        Send a command and receive the reply.

        Args:
            args: Command name followed by its arguments

        Returns:
            The decoded reply object
        """
        await self.send_raw(self.parser.format_request(*args))
        return await self.read_reply()

    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()


@pytest.fixture
def client_factory(server_port: int):
    """
    Factory fixture to create test clients.

    Usage:
        async def test_something(server, client_factory):
            async with client_factory() as client:
                reply = await client.send_command("GET", "key")
    """
    def factory() -> AsyncClient:
        return AsyncClient('127.0.0.1', server_port)
    return factory


# ============================================================================
# Pytest Configuration
# ============================================================================

def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

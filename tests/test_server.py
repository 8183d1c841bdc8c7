"""
Tests for the Async TCP Server

These tests verify the RespServer class:
- Server starts and accepts connections
- Commands are executed over the wire
- Malformed frames close the connection
- Sessions are cleaned up on disconnect and on stop()

Run with: python -m pytest tests/test_server.py -v
"""

import asyncio
import logging
import pytest
from respcache.network.tcp_server import RespServer
from respcache.protocol.commands import Array, BulkString, Error, Integer, SimpleString

OK = SimpleString("OK")


@pytest.mark.asyncio
class TestServerConnection:
    """Test server connection handling."""

    async def test_server_accepts_connection(self, server, client_factory):
        async with client_factory() as client:
            assert client.reader is not None
            assert client.writer is not None
            assert server.is_running() is True

    async def test_server_handles_disconnect(self, server, server_port):
        """Test server handles client disconnect gracefully."""
        reader, writer = await asyncio.open_connection('127.0.0.1', server_port)

        writer.write(b"*3\r\n$3\r\nSET\r\n$3\r\nkey\r\n$5\r\nvalue\r\n")
        await writer.drain()
        assert await reader.readline() == b"+OK\r\n"

        writer.close()
        await writer.wait_closed()

        # Server should still accept new connections and keep the data
        reader, writer = await asyncio.open_connection('127.0.0.1', server_port)
        writer.write(b"*2\r\n$3\r\nGET\r\n$3\r\nkey\r\n")
        await writer.drain()
        assert await reader.readexactly(11) == b"$5\r\nvalue\r\n"
        writer.close()
        await writer.wait_closed()

    async def test_quit_closes_connection(self, server, client_factory):
        async with client_factory() as client:
            assert await client.send_command("QUIT") == OK
            assert await asyncio.wait_for(client.reader.read(), 2.0) == b""

    async def test_session_removed_after_disconnect(self, server, client_factory):
        async with client_factory() as client:
            await client.send_command("SUBSCRIBE", "ch")
            assert server.registry.subscriber_count("ch") == 1

        await asyncio.sleep(0.1)

        assert server.registry.subscriber_count("ch") == 0
        assert server.get_stats()["active_connections"] == 0


@pytest.mark.asyncio
class TestServerCommands:
    """Test command execution through server."""

    async def test_ping(self, server, client_factory):
        async with client_factory() as client:
            assert await client.send_command("PING") == SimpleString("PONG")

    async def test_set_get(self, server, client_factory):
        async with client_factory() as client:
            assert await client.send_command("SET", "key1", "value1") == OK
            assert await client.send_command("GET", "key1") == BulkString("value1")

    async def test_get_not_found(self, server, client_factory):
        async with client_factory() as client:
            assert await client.send_command("GET", "nonexistent") == BulkString(None)

    async def test_del(self, server, client_factory):
        async with client_factory() as client:
            await client.send_command("SET", "key1", "value1")
            assert await client.send_command("DEL", "key1") == Integer(1)
            assert await client.send_command("DEL", "key1") == Integer(0)
            assert await client.send_command("GET", "key1") == BulkString(None)

    async def test_exists(self, server, client_factory):
        async with client_factory() as client:
            assert await client.send_command("EXISTS", "key1") == Integer(0)
            await client.send_command("SET", "key1", "value1")
            assert await client.send_command("EXISTS", "key1") == Integer(1)

    async def test_keys(self, server, client_factory):
        async with client_factory() as client:
            await client.send_command("SET", "key1", "value1")
            assert await client.send_command("KEYS", "*") == Array([])

    async def test_empty_value_distinct_from_null(self, server, client_factory):
        async with client_factory() as client:
            await client.send_command("SET", "empty", "")
            assert await client.send_command("GET", "empty") == BulkString("")

    async def test_value_with_crlf(self, server, client_factory):
        async with client_factory() as client:
            await client.send_command("SET", "k", "line1\r\nline2")
            assert await client.send_command("GET", "k") == BulkString("line1\r\nline2")

    async def test_unknown_command(self, server, client_factory):
        async with client_factory() as client:
            reply = await client.send_command("FOOBAR")
            assert isinstance(reply, Error)
            assert "unknown command" in reply.message

    async def test_wrong_arity_keeps_connection(self, server, client_factory):
        async with client_factory() as client:
            assert await client.send_command("SET", "onlykey") == Error(
                "ERR wrong number of arguments for 'set' command"
            )
            assert await client.send_command("PING") == SimpleString("PONG")

    async def test_case_insensitive_commands(self, server, client_factory):
        async with client_factory() as client:
            assert await client.send_command("set", "key1", "value1") == OK
            assert await client.send_command("Get", "key1") == BulkString("value1")

    async def test_ttl_through_server(self, server, client_factory):
        async with client_factory() as client:
            assert await client.send_command("SET", "tmp", "v", "PX", "100") == OK
            assert await client.send_command("GET", "tmp") == BulkString("v")

            await asyncio.sleep(0.2)

            assert await client.send_command("GET", "tmp") == BulkString(None)
            assert await client.send_command("EXISTS", "tmp") == Integer(0)


@pytest.mark.asyncio
class TestServerFraming:
    """Frame handling over the socket."""

    async def test_frame_split_across_writes(self, server, client_factory):
        async with client_factory() as client:
            await client.send_raw(b"*2\r\n$3\r\nGE")
            await asyncio.sleep(0.05)
            await client.send_raw(b"T\r\n$3\r\nkey\r\n")

            assert await client.read_reply() == BulkString(None)

    async def test_pipelined_frames_answered_in_order(self, server, client_factory):
        async with client_factory() as client:
            await client.send_raw(
                client.parser.format_request("SET", "k", "v")
                + client.parser.format_request("GET", "k")
                + client.parser.format_request("DEL", "k")
            )

            assert await client.read_reply() == OK
            assert await client.read_reply() == BulkString("v")
            assert await client.read_reply() == Integer(1)

    async def test_missing_array_marker_closes_connection(self, server, client_factory):
        async with client_factory() as client:
            await client.send_raw(b"PING\r\n")
            assert await asyncio.wait_for(client.reader.read(), 2.0) == b""

    async def test_bad_length_closes_connection(self, server, client_factory):
        async with client_factory() as client:
            await client.send_raw(b"*1\r\n$abc\r\n")
            assert await asyncio.wait_for(client.reader.read(), 2.0) == b""

    async def test_server_survives_protocol_error(self, server, client_factory):
        async with client_factory() as bad:
            await bad.send_raw(b"garbage\r\n")
            await asyncio.wait_for(bad.reader.read(), 2.0)

        async with client_factory() as good:
            assert await good.send_command("PING") == SimpleString("PONG")

    async def test_null_argument(self, server, client_factory):
        async with client_factory() as client:
            await client.send_raw(b"*2\r\n$3\r\nGET\r\n$-1\r\n")
            assert await client.read_reply() == Error("ERR null argument for 'get' command")

    async def test_large_frame_does_not_stall_other_clients(self, server, client_factory):
        async with client_factory() as big, client_factory() as other:
            frame = big.parser.format_request("SET", *["x"] * 199999)
            for i in range(0, len(frame), 4096):
                big.writer.write(frame[i:i + 4096])
            drain = asyncio.create_task(big.writer.drain())

            await other.send_raw(other.parser.format_request("PING"))
            assert await other.read_reply(timeout=5.0) == SimpleString("PONG")

            await drain
            assert await big.read_reply(timeout=10.0) == Error("ERR syntax error")


@pytest.mark.asyncio
class TestServerLifecycle:
    """Start/stop behaviour."""

    async def test_stop_terminates_open_sessions(self, server_port):
        srv = RespServer(host='127.0.0.1', port=server_port, password="")
        await srv.bind()

        reader, writer = await asyncio.open_connection('127.0.0.1', server_port)
        writer.write(b"*1\r\n$4\r\nPING\r\n")
        await writer.drain()
        assert await reader.readline() == b"+PONG\r\n"

        await srv.stop()

        assert srv.is_running() is False
        assert await asyncio.wait_for(reader.read(), 2.0) == b""
        writer.close()

    async def test_stop_with_open_clients_logs_no_errors(self, server_port, caplog):
        srv = RespServer(host='127.0.0.1', port=server_port, password="")
        await srv.bind()

        connections = []
        for _ in range(3):
            reader, writer = await asyncio.open_connection('127.0.0.1', server_port)
            writer.write(b"*2\r\n$9\r\nSUBSCRIBE\r\n$2\r\nch\r\n")
            await writer.drain()
            await asyncio.wait_for(reader.readuntil(b":1\r\n"), 2.0)
            connections.append((reader, writer))

        with caplog.at_level(logging.DEBUG):
            await srv.stop()
            await asyncio.sleep(0.1)  # Let task done-callbacks run

        errors = [r for r in caplog.records if r.levelno >= logging.ERROR]
        assert errors == []
        for reader, writer in connections:
            assert await asyncio.wait_for(reader.read(), 2.0) == b""
            writer.close()

    async def test_stop_releases_store(self, server_port):
        srv = RespServer(host='127.0.0.1', port=server_port, password="")
        await srv.bind()
        srv.store.set("k", "v")

        await srv.stop()

        assert srv.store.size() == 0

    async def test_bind_port_zero(self):
        srv = RespServer(host='127.0.0.1', port=0, password="")
        await srv.bind()
        try:
            assert srv.port != 0
        finally:
            await srv.stop()

    async def test_max_connections(self, server_port):
        srv = RespServer(host='127.0.0.1', port=server_port, password="", max_connections=1)
        await srv.bind()
        try:
            first_reader, first_writer = await asyncio.open_connection('127.0.0.1', server_port)
            first_writer.write(b"*1\r\n$4\r\nPING\r\n")
            await first_writer.drain()
            assert await first_reader.readline() == b"+PONG\r\n"

            reader, writer = await asyncio.open_connection('127.0.0.1', server_port)
            assert await asyncio.wait_for(reader.readline(), 2.0) == (
                b"-ERR max number of clients reached\r\n"
            )
            assert await asyncio.wait_for(reader.read(), 2.0) == b""
            writer.close()
            first_writer.close()
        finally:
            await srv.stop()

    async def test_stats(self, server, client_factory):
        async with client_factory() as client:
            await client.send_command("SET", "k", "v")
            await client.send_command("GET", "k")

            stats = server.get_stats()

        assert stats["total_connections"] >= 1
        assert stats["total_requests"] >= 2
        assert stats["auth_required"] is False
        assert stats["store_stats"]["total_keys"] == 1

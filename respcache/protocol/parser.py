"""
RESP Wire Codec

This module handles decoding of request frames and encoding of replies.

The server decodes requests straight from an asyncio.StreamReader with
read_request(), so every byte of a frame is looked at once no matter how
the frame is split across reads.

The buffer decoders (parse_request, parse_reply) work on an in-memory
buffer: they return ``(value, bytes_consumed)`` once a complete frame is
available, ``None`` while more bytes are needed, and raise ProtocolError as
soon as the buffer can no longer be a valid frame.
"""

import asyncio
from typing import List, Optional, Tuple

from ..config.settings import settings
from .commands import Array, BulkString, Error, Integer, Reply, SimpleString
from .errors import ProtocolError

CRLF = b"\r\n"

# Longest header line (e.g. "$123\r\n") tolerated before giving up on a frame
MAX_LINE_LENGTH = 64 * 1024


def _decode(data: bytes) -> str:
    return data.decode("utf-8", "surrogateescape")


def _encode(text: str) -> bytes:
    return text.encode("utf-8", "surrogateescape")


class RespParser:
    """
    Codec for the RESP request/reply framing.

    Protocol Format:
        Request:  *<N>\\r\\n followed by N bulk strings $<len>\\r\\n<bytes>\\r\\n
                  ($-1\\r\\n is a null argument)
        Replies:  +<text>\\r\\n          simple string
                  -<text>\\r\\n          error
                  :<n>\\r\\n             integer
                  $<len>\\r\\n<bytes>\\r\\n  bulk string ($-1\\r\\n for null)
                  *<N>\\r\\n<N replies>  array
    """

    def __init__(self):
        """Initialize the parser with frame limits from settings."""
        self.max_bulk_length = settings.MAX_BULK_LENGTH
        self.max_array_length = settings.MAX_ARRAY_LENGTH

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def parse_request(self, buf: bytes) -> Optional[Tuple[List[Optional[str]], int]]:
        """
        Decode one client request from the start of ``buf``.

        Returns:
            (arguments, bytes_consumed), or None if ``buf`` holds only part
            of a frame. Arguments are strings, or None for null bulk strings.

        Raises:
            ProtocolError: missing array marker, non-numeric or out of range
                length prefix, or a bulk string not terminated by CRLF.

        Examples:
            >>> RespParser().parse_request(b"*1\\r\\n$4\\r\\nPING\\r\\n")
            (['PING'], 14)
            >>> RespParser().parse_request(b"*1\\r\\n$4\\r\\nPI") is None
            True
        """
        if not buf:
            return None
        if buf[:1] != b"*":
            raise ProtocolError(f"expected '*', got {buf[:1]!r}")

        header = self._read_line(buf, 1)
        if header is None:
            return None
        line, pos = header
        count = self._parse_int(line, "multibulk length")
        if count < 1 or count > self.max_array_length:
            raise ProtocolError(f"invalid multibulk length {count}")

        args: List[Optional[str]] = []
        for _ in range(count):
            if pos >= len(buf):
                return None
            if buf[pos:pos + 1] != b"$":
                raise ProtocolError(f"expected '$', got {buf[pos:pos + 1]!r}")
            parsed = self._parse_bulk(buf, pos + 1)
            if parsed is None:
                return None
            value, pos = parsed
            args.append(value)

        return args, pos

    async def read_request(self, reader: asyncio.StreamReader) -> Optional[List[Optional[str]]]:
        """
        Read one client request from ``reader``.

        Header lines are bounded by the reader's limit and bulk payloads are
        read with a single readexactly() each.

        Returns:
            The request arguments, or None if the peer closed the connection
            cleanly between frames.

        Raises:
            ProtocolError: malformed frame, oversized header line, or EOF in
                the middle of a frame.
        """
        header = await self._read_stream_line(reader, frame_start=True)
        if header is None:
            return None
        if header[:1] != b"*":
            raise ProtocolError(f"expected '*', got {header[:1]!r}")
        count = self._parse_int(header[1:], "multibulk length")
        if count < 1 or count > self.max_array_length:
            raise ProtocolError(f"invalid multibulk length {count}")

        args: List[Optional[str]] = []
        for _ in range(count):
            line = await self._read_stream_line(reader)
            if line[:1] != b"$":
                raise ProtocolError(f"expected '$', got {line[:1]!r}")
            length = self._parse_int(line[1:], "bulk length")
            if length == -1:
                args.append(None)
                continue
            if length < 0 or length > self.max_bulk_length:
                raise ProtocolError(f"invalid bulk length {length}")

            try:
                data = await reader.readexactly(length + 2)
            except asyncio.IncompleteReadError:
                raise ProtocolError("connection closed in the middle of a frame") from None
            if data[-2:] != CRLF:
                raise ProtocolError("bulk string not terminated by CRLF")
            args.append(_decode(data[:-2]))

        return args

    def format_request(self, *args: Optional[str]) -> bytes:
        """Encode a request the way a client sends it."""
        out = bytearray(b"*%d\r\n" % len(args))
        for arg in args:
            out += self._format_bulk(arg)
        return bytes(out)

    # ------------------------------------------------------------------
    # Replies
    # ------------------------------------------------------------------

    def format_response(self, reply: Reply) -> bytes:
        """
        Encode a reply object into its wire form.

        Examples:
            >>> RespParser().format_response(SimpleString("OK"))
            b'+OK\\r\\n'
            >>> RespParser().format_response(BulkString(None))
            b'$-1\\r\\n'
        """
        if isinstance(reply, SimpleString):
            return b"+" + _encode(reply.value) + CRLF
        if isinstance(reply, Error):
            return b"-" + _encode(reply.message) + CRLF
        if isinstance(reply, Integer):
            return b":%d\r\n" % reply.value
        if isinstance(reply, BulkString):
            return self._format_bulk(reply.value)
        if isinstance(reply, Array):
            out = bytearray(b"*%d\r\n" % len(reply.items))
            for item in reply.items:
                out += self.format_response(item)
            return bytes(out)
        raise TypeError(f"cannot encode {reply!r}")

    def parse_reply(self, buf: bytes) -> Optional[Tuple[Reply, int]]:
        """
        Decode one reply from the start of ``buf``.

        A null array (``*-1``) decodes to the null bulk string.

        Returns:
            (reply, bytes_consumed), or None if the reply is incomplete.
        """
        return self._parse_reply_at(buf, 0)

    def _parse_reply_at(self, buf: bytes, pos: int) -> Optional[Tuple[Reply, int]]:
        if pos >= len(buf):
            return None
        marker = buf[pos:pos + 1]

        if marker == b"$":
            parsed = self._parse_bulk(buf, pos + 1)
            if parsed is None:
                return None
            value, pos = parsed
            return BulkString(value), pos

        header = self._read_line(buf, pos + 1)
        if header is None:
            return None
        line, pos = header

        if marker == b"+":
            return SimpleString(_decode(line)), pos
        if marker == b"-":
            return Error(_decode(line)), pos
        if marker == b":":
            return Integer(self._parse_int(line, "integer")), pos
        if marker == b"*":
            count = self._parse_int(line, "array length")
            if count == -1:
                return BulkString(None), pos
            if count < 0 or count > self.max_array_length:
                raise ProtocolError(f"invalid array length {count}")
            items = []
            for _ in range(count):
                parsed = self._parse_reply_at(buf, pos)
                if parsed is None:
                    return None
                item, pos = parsed
                items.append(item)
            return Array(items), pos

        raise ProtocolError(f"unknown reply type {marker!r}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _read_line(self, buf: bytes, start: int) -> Optional[Tuple[bytes, int]]:
        end = buf.find(CRLF, start)
        if end == -1:
            if len(buf) - start > MAX_LINE_LENGTH:
                raise ProtocolError("header line too long")
            return None
        return buf[start:end], end + 2

    async def _read_stream_line(self, reader: asyncio.StreamReader,
                                frame_start: bool = False) -> Optional[bytes]:
        try:
            line = await reader.readuntil(CRLF)
        except asyncio.IncompleteReadError as exc:
            if frame_start and not exc.partial:
                return None
            raise ProtocolError("connection closed in the middle of a frame") from None
        except asyncio.LimitOverrunError:
            raise ProtocolError("header line too long") from None
        return line[:-2]

    def _parse_int(self, line: bytes, what: str) -> int:
        try:
            return int(line)
        except ValueError:
            raise ProtocolError(f"invalid {what} {line!r}") from None

    def _parse_bulk(self, buf: bytes, start: int) -> Optional[Tuple[Optional[str], int]]:
        # ``start`` points just past the '$' marker
        header = self._read_line(buf, start)
        if header is None:
            return None
        line, pos = header
        length = self._parse_int(line, "bulk length")
        if length == -1:
            return None, pos
        if length < 0 or length > self.max_bulk_length:
            raise ProtocolError(f"invalid bulk length {length}")

        end = pos + length
        if len(buf) < end + 2:
            return None
        if buf[end:end + 2] != CRLF:
            raise ProtocolError("bulk string not terminated by CRLF")
        return _decode(buf[pos:end]), end + 2

    def _format_bulk(self, value: Optional[str]) -> bytes:
        if value is None:
            return b"$-1\r\n"
        data = _encode(value)
        return b"$%d\r\n" % len(data) + data + CRLF

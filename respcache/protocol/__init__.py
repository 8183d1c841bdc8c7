"""Protocol module for RESP-Cache."""

from .commands import (
    Array,
    BulkString,
    Command,
    CommandType,
    Error,
    Integer,
    Reply,
    SimpleString,
)
from .errors import (
    AuthFailed,
    AuthRequired,
    CommandError,
    InvalidArgument,
    ProtocolError,
    ReplyError,
    RespCacheError,
    UnknownCommand,
    WrongArity,
)
from .parser import RespParser

__all__ = [
    "Array",
    "AuthFailed",
    "AuthRequired",
    "BulkString",
    "Command",
    "CommandError",
    "CommandType",
    "Error",
    "Integer",
    "InvalidArgument",
    "ProtocolError",
    "Reply",
    "ReplyError",
    "RespCacheError",
    "RespParser",
    "SimpleString",
    "UnknownCommand",
    "WrongArity",
]

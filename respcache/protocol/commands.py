"""
Protocol Command and Reply Definitions

This module defines the data structures for decoded commands and for the
five reply shapes the server can send back.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional, Union


class CommandType(Enum):
    """Enumeration of supported command types."""
    PING = auto()
    AUTH = auto()
    QUIT = auto()
    SET = auto()
    GET = auto()
    EXISTS = auto()
    DEL = auto()
    KEYS = auto()
    SUBSCRIBE = auto()
    PUBLISH = auto()
    UNSUBSCRIBE = auto()
    UNKNOWN = auto()


# Minimum number of arguments after the command name
MIN_ARITY = {
    CommandType.PING: 0,
    CommandType.AUTH: 1,
    CommandType.QUIT: 0,
    CommandType.SET: 2,
    CommandType.GET: 1,
    CommandType.EXISTS: 1,
    CommandType.DEL: 1,
    CommandType.KEYS: 1,
    CommandType.SUBSCRIBE: 1,
    CommandType.PUBLISH: 2,
    CommandType.UNSUBSCRIBE: 0,
}

# Commands accepted before a session has authenticated
ALWAYS_PERMITTED = frozenset({CommandType.PING, CommandType.AUTH, CommandType.QUIT})


@dataclass
class Command:
    """
    Represents a decoded request.

    Attributes:
        type: The command type (UNKNOWN for unrecognized names)
        name: The command name as sent by the client
        args: Arguments following the name; None marks a null bulk string
    """
    type: CommandType
    name: str
    args: List[Optional[str]] = field(default_factory=list)

    @classmethod
    def from_args(cls, request: List[Optional[str]]) -> "Command":
        """Build a Command from a decoded request array (name matched case-insensitively)."""
        name = request[0] if request and request[0] is not None else ""
        try:
            command_type = CommandType[name.upper()]
        except KeyError:
            command_type = CommandType.UNKNOWN
        return cls(type=command_type, name=name, args=list(request[1:]))

    @property
    def has_min_arity(self) -> bool:
        if self.type is CommandType.UNKNOWN:
            return True
        return len(self.args) >= MIN_ARITY[self.type]


@dataclass(frozen=True)
class SimpleString:
    value: str


@dataclass(frozen=True)
class Error:
    message: str


@dataclass(frozen=True)
class Integer:
    value: int


@dataclass(frozen=True)
class BulkString:
    """A bulk string reply; ``value=None`` is the null bulk string."""
    value: Optional[str]


@dataclass(frozen=True)
class Array:
    items: List["Reply"]


Reply = Union[SimpleString, Error, Integer, BulkString, Array]

OK = SimpleString("OK")
PONG = SimpleString("PONG")
NULL = BulkString(None)

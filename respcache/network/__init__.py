"""Network module for RESP-Cache."""

from .dispatcher import CommandDispatcher
from .session import Session
from .tcp_server import RespServer, run_server

__all__ = ["CommandDispatcher", "RespServer", "Session", "run_server"]

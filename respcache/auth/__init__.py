"""Authentication module for RESP-Cache."""

from .gate import AuthGate

__all__ = ["AuthGate"]

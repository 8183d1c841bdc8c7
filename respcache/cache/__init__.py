"""Cache module for RESP-Cache."""

from .store import Entry, KVStore

__all__ = ["Entry", "KVStore"]

"""
Key-Value Store Module

This module implements the shared key-value table behind every connection.

Expiration is lazy: there is no background sweeper. Any operation that
observes an entry whose expiration time has passed removes it before
answering, so an expired key and a missing key look the same to callers.
"""

import threading
import time
from typing import Any, Dict, NamedTuple, Optional


class Entry(NamedTuple):
    """A stored value and its absolute expiration time (None = never)."""
    value: str
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        return self.expires_at is not None and self.expires_at <= now


class KVStore:
    """
    Thread-safe in-memory key-value store with millisecond TTL support.

    All four operations run under a single lock, which gives every call an
    atomic view of the table no matter how many sessions (or host threads)
    use the store at once. The lock is never held across I/O.

    Internal Storage:
        Plain dict of key -> Entry(value, expires_at).
        expires_at is an absolute ``time.time()`` timestamp or None.
    """

    def __init__(self):
        self._store: Dict[str, Entry] = {}
        self._lock = threading.Lock()

    def set(self, key: str, value: str, ttl_ms: Optional[int] = None) -> bool:
        """
        Insert or overwrite a key unconditionally.

        Args:
            key: The key to store
            value: The value to associate with the key
            ttl_ms: Time-to-live in milliseconds. None clears any previous
                expiration on the key.

        Returns:
            True, always
        """
        expires_at = time.time() + ttl_ms / 1000.0 if ttl_ms is not None else None
        with self._lock:
            self._store[key] = Entry(value, expires_at)
        return True

    def get(self, key: str) -> Optional[str]:
        """
        Retrieve the value for a given key.

        Returns:
            The value if found and not expired, None otherwise
        """
        with self._lock:
            entry = self._live_entry(key)
            return entry.value if entry is not None else None

    def exists(self, key: str) -> bool:
        """Check if a key exists and is not expired."""
        with self._lock:
            return self._live_entry(key) is not None

    def delete(self, key: str) -> bool:
        """
        Delete a key-value pair.

        Returns:
            True if a live entry was removed. An expired entry is still
            physically removed, but reported as absent (False).
        """
        with self._lock:
            entry = self._store.pop(key, None)
        if entry is None:
            return False
        return not entry.is_expired(time.time())

    def _live_entry(self, key: str) -> Optional[Entry]:
        # Caller must hold self._lock
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.is_expired(time.time()):
            # Lazy expiration
            del self._store[key]
            return None
        return entry

    def size(self) -> int:
        """
        Get the current number of keys in the store.

        Note: This may include expired keys that haven't been observed yet.
        """
        with self._lock:
            return len(self._store)

    def clear(self) -> None:
        """Remove all keys from the store."""
        with self._lock:
            self._store.clear()

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the store.

        Returns:
            Dictionary containing:
            - total_keys: Total keys in store
            - expired_keys: Count of expired (but not yet removed) keys
            - active_keys: Count of non-expired keys
        """
        now = time.time()
        with self._lock:
            total = len(self._store)
            expired = sum(1 for entry in self._store.values() if entry.is_expired(now))

        return {
            "total_keys": total,
            "expired_keys": expired,
            "active_keys": total - expired,
        }

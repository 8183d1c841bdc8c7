"""
Subscription Registry

Channel -> subscriber bookkeeping and message fan-out.

Channels hold session ids, not sessions: the registry resolves ids through
its own index when it needs to write, and a session that goes away is
removed from every channel by ``drop_session()``.
"""

import asyncio
import logging
import threading
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Set

from ..protocol.commands import Array, BulkString

if TYPE_CHECKING:
    from ..network.session import Session

logger = logging.getLogger(__name__)


class SubscriptionRegistry:
    """
    Thread-safe pub/sub registry shared by all sessions.

    The lock protects membership only; it is released before any socket
    write, so a slow subscriber never blocks subscribe/unsubscribe calls
    from other connections.
    """

    def __init__(self):
        self._channels: Dict[str, Set[int]] = {}
        self._sessions: Dict[int, "Session"] = {}
        self._lock = threading.Lock()
        self._messages_published = 0

    def subscribe(self, session: "Session", channel: str) -> int:
        """
        Add ``session`` to ``channel``.

        Returns:
            The session's total number of subscriptions. Subscribing twice
            to the same channel does not change the count.
        """
        with self._lock:
            self._channels.setdefault(channel, set()).add(session.id)
            self._sessions[session.id] = session
            session.subscribed_channels.add(channel)
            count = len(session.subscribed_channels)
        logger.info(f"Session {session.id} subscribed to channel: {channel}")
        return count

    def unsubscribe(self, session: "Session", channel: Optional[str] = None) -> int:
        """
        Remove one membership, or all of them when ``channel`` is None.

        Returns:
            Number of channels the session is still subscribed to.
        """
        with self._lock:
            if channel is None:
                channels = list(session.subscribed_channels)
            else:
                channels = [channel]
            for name in channels:
                self._remove_locked(session, name)
            return len(session.subscribed_channels)

    async def publish(self, channel: str, message: str) -> int:
        """
        Deliver ``message`` to every session subscribed to ``channel``.

        A subscriber whose connection fails is dropped from the channel and
        does not count as a recipient; delivery to the others continues.

        Returns:
            Number of sessions the notification was written to.
        """
        with self._lock:
            self._messages_published += 1
            targets = [
                self._sessions[session_id]
                for session_id in self._channels.get(channel, ())
                if session_id in self._sessions
            ]
        if not targets:
            return 0

        notification = Array([
            BulkString("message"),
            BulkString(channel),
            BulkString(message),
        ])
        results = await asyncio.gather(
            *(session.send(notification) for session in targets),
            return_exceptions=True,
        )

        delivered = 0
        for session, result in zip(targets, results):
            if isinstance(result, OSError):
                logger.warning(
                    f"Dropping session {session.id} from channel {channel}: {result}"
                )
                with self._lock:
                    self._remove_locked(session, channel)
            elif isinstance(result, BaseException):
                raise result
            else:
                delivered += 1
        return delivered

    def drop_session(self, session: "Session") -> None:
        """Remove a terminated session from every channel it belonged to."""
        with self._lock:
            for name in list(session.subscribed_channels):
                self._remove_locked(session, name)
            self._sessions.pop(session.id, None)

    def _remove_locked(self, session: "Session", channel: str) -> None:
        # Caller must hold self._lock
        members = self._channels.get(channel)
        if members is not None:
            members.discard(session.id)
            if not members:
                del self._channels[channel]
        session.subscribed_channels.discard(channel)
        if not session.subscribed_channels:
            self._sessions.pop(session.id, None)

    def subscriber_count(self, channel: str) -> int:
        """Number of sessions currently subscribed to ``channel``."""
        with self._lock:
            return len(self._channels.get(channel, ()))

    def channels(self) -> List[str]:
        """Names of channels with at least one subscriber."""
        with self._lock:
            return sorted(self._channels)

    def clear(self) -> None:
        """Forget every subscription."""
        with self._lock:
            for session in self._sessions.values():
                session.subscribed_channels.clear()
            self._channels.clear()
            self._sessions.clear()

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "channels": len(self._channels),
                "subscribers": len(self._sessions),
                "messages_published": self._messages_published,
            }

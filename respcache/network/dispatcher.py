"""
Command Dispatcher

Maps a decoded request onto the Store, the Subscription Registry or the
Auth Gate and builds the reply. Every CommandError raised along the way
becomes an error reply; nothing here touches the socket directly except
PUBLISH fan-out, which goes through the subscribers' own sessions.
"""

import logging
from typing import List, Optional

from ..auth.gate import AuthGate
from ..cache.store import KVStore
from ..protocol.commands import (
    NULL,
    OK,
    PONG,
    Array,
    BulkString,
    Command,
    CommandType,
    Error,
    Integer,
    Reply,
)
from ..protocol.errors import (
    AuthFailed,
    CommandError,
    InvalidArgument,
    UnknownCommand,
    WrongArity,
)
from ..pubsub.registry import SubscriptionRegistry
from .session import Session

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """
    Stateless request -> reply mapping.

    Checks run in this order, and a failing check has no side effect:
        1. Auth Gate (PING, AUTH and QUIT always pass)
        2. Unknown command name
        3. Minimum arity
    """

    def __init__(self, store: KVStore, registry: SubscriptionRegistry, auth: AuthGate):
        self.store = store
        self.registry = registry
        self.auth = auth
        self._handlers = {
            CommandType.PING: self._ping,
            CommandType.AUTH: self._auth,
            CommandType.QUIT: self._quit,
            CommandType.SET: self._set,
            CommandType.GET: self._get,
            CommandType.EXISTS: self._exists,
            CommandType.DEL: self._del,
            CommandType.KEYS: self._keys,
            CommandType.SUBSCRIBE: self._subscribe,
            CommandType.PUBLISH: self._publish,
            CommandType.UNSUBSCRIBE: self._unsubscribe,
        }

    async def dispatch(self, session: Session, request: List[Optional[str]]) -> Reply:
        """Execute one decoded request for ``session`` and return the reply."""
        command = Command.from_args(request)
        try:
            self.auth.check(session, command)
            if command.type is CommandType.UNKNOWN:
                raise UnknownCommand(command.name)
            if not command.has_min_arity:
                raise WrongArity(command.name)
            logger.debug(f"Session {session.id}: {command.type.name}")
            return await self._handlers[command.type](session, command)
        except CommandError as exc:
            return Error(exc.message)

    @staticmethod
    def _required(command: Command, count: int) -> List[str]:
        values = command.args[:count]
        if any(value is None for value in values):
            raise InvalidArgument(
                f"ERR null argument for '{command.name.lower()}' command"
            )
        return values

    # ------------------------------------------------------------------
    # Connection commands
    # ------------------------------------------------------------------

    async def _ping(self, session: Session, command: Command) -> Reply:
        if command.args:
            return BulkString(command.args[0])
        return PONG

    async def _auth(self, session: Session, command: Command) -> Reply:
        (password,) = self._required(command, 1)
        if not self.auth.authenticate(session, password):
            raise AuthFailed()
        return OK

    async def _quit(self, session: Session, command: Command) -> Reply:
        session.request_close()
        return OK

    # ------------------------------------------------------------------
    # Key commands
    # ------------------------------------------------------------------

    async def _set(self, session: Session, command: Command) -> Reply:
        key, value = self._required(command, 2)
        options = command.args[2:]

        ttl_ms = None
        if options:
            if len(options) != 2 or options[0] is None or options[0].upper() != "PX":
                raise InvalidArgument("ERR syntax error")
            try:
                ttl_ms = int(options[1])
            except (TypeError, ValueError):
                raise InvalidArgument("ERR value is not an integer or out of range") from None
            if ttl_ms <= 0:
                raise InvalidArgument("ERR invalid expire time in 'set' command")

        self.store.set(key, value, ttl_ms=ttl_ms)
        return OK

    async def _get(self, session: Session, command: Command) -> Reply:
        (key,) = self._required(command, 1)
        value = self.store.get(key)
        return BulkString(value) if value is not None else NULL

    async def _exists(self, session: Session, command: Command) -> Reply:
        (key,) = self._required(command, 1)
        return Integer(1 if self.store.exists(key) else 0)

    async def _del(self, session: Session, command: Command) -> Reply:
        (key,) = self._required(command, 1)
        return Integer(1 if self.store.delete(key) else 0)

    async def _keys(self, session: Session, command: Command) -> Reply:
        # Pattern matching is not supported; always empty
        return Array([])

    # ------------------------------------------------------------------
    # Pub/Sub commands
    # ------------------------------------------------------------------

    async def _subscribe(self, session: Session, command: Command) -> Reply:
        (channel,) = self._required(command, 1)
        count = self.registry.subscribe(session, channel)
        return Array([BulkString("subscribe"), BulkString(channel), Integer(count)])

    async def _publish(self, session: Session, command: Command) -> Reply:
        channel, message = self._required(command, 2)
        recipients = await self.registry.publish(channel, message)
        logger.info(f"Published message to channel {channel}: {recipients} recipient(s)")
        return Integer(recipients)

    async def _unsubscribe(self, session: Session, command: Command) -> Reply:
        channel = None
        if command.args:
            (channel,) = self._required(command, 1)
        count = self.registry.unsubscribe(session, channel)
        return Array([
            BulkString("unsubscribe"),
            BulkString(channel if channel is not None else ""),
            Integer(count),
        ])

"""
Authentication gate.

Holds the server's optional password and decides, per command, whether an
unauthenticated session may proceed.
"""

import hmac
import logging
from typing import TYPE_CHECKING, Optional

from ..protocol.commands import ALWAYS_PERMITTED, Command
from ..protocol.errors import AuthRequired

if TYPE_CHECKING:
    from ..network.session import Session

logger = logging.getLogger(__name__)


class AuthGate:
    """
    Password check shared by all sessions.

    Usage:
        gate = AuthGate("secret")
        gate.check(session, command)        # raises AuthRequired
        gate.authenticate(session, "secret")  # True, session unlocked
    """

    def __init__(self, password: Optional[str] = None):
        self._password = password or ""

    def requires_auth(self) -> bool:
        """True only when a non-empty password is configured."""
        return bool(self._password)

    def check(self, session: "Session", command: Command) -> None:
        """
        Reject ``command`` if the session must authenticate first.

        PING, AUTH and QUIT are always permitted.

        Raises:
            AuthRequired: auth is enabled and the session has not passed it
        """
        if not self.requires_auth() or session.authenticated:
            return
        if command.type in ALWAYS_PERMITTED:
            return
        raise AuthRequired()

    def authenticate(self, session: "Session", supplied: str) -> bool:
        """
        Try to authenticate ``session``.

        Succeeds when no password is configured or ``supplied`` matches
        exactly. A failure leaves the session's previous state untouched.
        """
        if not self.requires_auth():
            session.authenticated = True
            return True

        if hmac.compare_digest(supplied.encode("utf-8", "surrogateescape"),
                               self._password.encode("utf-8", "surrogateescape")):
            session.authenticated = True
            logger.debug(f"Session {session.id} authenticated")
            return True

        logger.warning(f"Failed AUTH attempt from session {session.id} ({session.peer})")
        return False

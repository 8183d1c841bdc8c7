"""
Error taxonomy for RESP-Cache.

ProtocolError means the byte stream can no longer be trusted and the
connection must be dropped. CommandError and its subclasses are ordinary
per-command failures: they carry the exact text sent back to the client as
an error reply, and the connection stays open.
"""


class RespCacheError(Exception):
    """Base class for all RESP-Cache errors."""


class ProtocolError(RespCacheError):
    """A malformed frame was received; frame boundaries are lost."""


class CommandError(RespCacheError):
    """A command failed; ``message`` is the wire text of the error reply."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthRequired(CommandError):
    def __init__(self):
        super().__init__("NOAUTH Authentication required.")


class AuthFailed(CommandError):
    def __init__(self):
        super().__init__("WRONGPASS invalid password")


class WrongArity(CommandError):
    def __init__(self, command: str):
        super().__init__(
            f"ERR wrong number of arguments for '{command.lower()}' command"
        )
        self.command = command


class UnknownCommand(CommandError):
    def __init__(self, command: str):
        super().__init__(f"ERR unknown command '{command}'")
        self.command = command


class InvalidArgument(CommandError):
    """An argument was present but unusable (bad integer, bad option...)."""


class ReplyError(RespCacheError):
    """Raised client-side when the server answers with an error reply."""

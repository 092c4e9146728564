"""Error types raised while running a command.

procdispatch errors v0.1.0

Every error carries an ``ErrorKind`` so callers can branch on the kind
instead of the class, and so the engine can report start failures over
the wire as a single byte.
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import Command, ExitStatus

__all__ = [
    "ErrorKind",
    "RunError",
    "ValidationError",
    "ProcessNotFoundError",
    "CommandFailedError",
    "ProtocolError",
    "ChannelError",
    "EngineError",
    "error_from_kind",
]


class ErrorKind(IntEnum):
    """Error kinds. The numeric value is the wire encoding (0 = no error)."""

    NOT_FOUND = 1
    PERMISSION_DENIED = 2
    INVALID_INPUT = 3
    COMMAND_FAILED = 4
    PROTOCOL = 5
    CHANNEL = 6
    OTHER = 7


class RunError(Exception):
    """Base class for all procdispatch errors."""

    kind: ErrorKind = ErrorKind.OTHER

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(RunError, ValueError):
    """The call could not be normalized into a command (e.g. empty argv)."""

    kind = ErrorKind.INVALID_INPUT


class ProcessNotFoundError(RunError):
    """The executable could not be located or started."""

    kind = ErrorKind.NOT_FOUND


class CommandFailedError(RunError):
    """The process ran and terminated unsuccessfully.

    Attributes:
        command: The command that was run
        status: Its exit status (``success`` is always False)
    """

    kind = ErrorKind.COMMAND_FAILED

    def __init__(self, message: str, command: Command, status: ExitStatus) -> None:
        self.command = command
        self.status = status
        super().__init__(message)


class ProtocolError(RunError):
    """The engine sent a malformed or unexpected reply."""

    kind = ErrorKind.PROTOCOL


class ChannelError(RunError):
    """The engine could not be reached."""

    kind = ErrorKind.CHANNEL


class EngineError(RunError):
    """Any other failure reported by the engine."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        self.kind = kind
        super().__init__(message)


def error_from_kind(kind: ErrorKind, message: str) -> RunError:
    """Build the exception matching an error kind reported by the engine."""
    if kind == ErrorKind.NOT_FOUND:
        return ProcessNotFoundError(message)
    if kind == ErrorKind.PROTOCOL:
        return ProtocolError(message)
    if kind == ErrorKind.CHANNEL:
        return ChannelError(message)
    return EngineError(kind, message)

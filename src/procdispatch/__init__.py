"""procdispatch - run external processes from asyncio and await their exit status.

Environment variables:
    PROCDISPATCH_LOG_DEBUG: debug logging to a temp file (default false)
    PROCDISPATCH_TERM_TIMEOUT: engine shutdown grace period (default 2.0s)
    PROCDISPATCH_KILL_TIMEOUT: engine shutdown kill wait (default 1.0s)

Usage:
    status = await procdispatch.run("git", "status", {"dir": repo})
"""

__version__ = "0.1.0"

from .command import build_command, render_argv
from .dispatch import Dispatcher, Engine, get_dispatcher, reset_dispatcher, set_dispatcher
from .engine import SIGNALS_SUPPORTED, LocalEngine
from .errors import (
    ChannelError,
    CommandFailedError,
    EngineError,
    ErrorKind,
    ProcessNotFoundError,
    ProtocolError,
    RunError,
    ValidationError,
)
from .runner import run, run_command
from .types import Command, CommandOptions, ExitedWithCode, ExitedWithSignal, ExitStatus

__all__ = [
    "__version__",
    "run",
    "run_command",
    "build_command",
    "render_argv",
    "Command",
    "CommandOptions",
    "ExitStatus",
    "ExitedWithCode",
    "ExitedWithSignal",
    "Dispatcher",
    "Engine",
    "LocalEngine",
    "SIGNALS_SUPPORTED",
    "get_dispatcher",
    "set_dispatcher",
    "reset_dispatcher",
    "ErrorKind",
    "RunError",
    "ValidationError",
    "ProcessNotFoundError",
    "CommandFailedError",
    "ProtocolError",
    "ChannelError",
    "EngineError",
]

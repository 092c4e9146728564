"""Run an external process and wait for it to exit.

Usage:
    from procdispatch import run

    await run("curl", "http://example.com/", "-o", "out")
    await run("ninja", "all", {"dir": "target/debug"})
    status = await run({"argv": ["git", "status"], "throw_on_failure": False})
"""

from __future__ import annotations

import logging
import os

from .command import OptionsLike, build_command
from .dispatch import Dispatcher, get_dispatcher
from .msg import AnyType, decode_run_res, encode_run
from .policy import check_status
from .types import Command, ExitStatus

__all__ = ["run", "run_command"]

logger = logging.getLogger(__name__)


async def run_command(command: Command, *, dispatcher: Dispatcher | None = None) -> ExitStatus:
    """Run a canonical command.

    Args:
        command: The command to run
        dispatcher: Channel to the engine (defaults to the shared one)

    Returns:
        The exit status

    Raises:
        ProcessNotFoundError: If the executable cannot be started
        CommandFailedError: If the process fails and throw_on_failure is set
        ChannelError: If the engine cannot be reached
        ProtocolError: If the engine replies with a malformed message
    """
    if dispatcher is None:
        dispatcher = get_dispatcher()

    base = await dispatcher.send_async(AnyType.RUN, encode_run(command))
    status = decode_run_res(base)
    logger.debug(f"Command {command.argv[0]} finished: {status}")

    return check_status(command, status)


async def run(
    *args: str | os.PathLike[str] | OptionsLike,
    dispatcher: Dispatcher | None = None,
) -> ExitStatus:
    """Run an external process.

    Accepts one or more argument strings optionally followed by an options
    object, or a single options object carrying ``argv``. Options may be a
    ``CommandOptions``, a ``Command`` or a mapping with the keys ``argv``,
    ``dir`` and ``throw_on_failure``.

    Raises:
        ValidationError: If no argv is given or an option is invalid;
            raised before anything is sent to the engine
    """
    return await run_command(build_command(*args), dispatcher=dispatcher)

"""Failure policy: decides whether an exit status is raised or returned."""

from __future__ import annotations

from .command import render_argv
from .errors import CommandFailedError
from .types import Command, ExitedWithSignal, ExitStatus

__all__ = ["check_status", "describe_status"]


def describe_status(status: ExitStatus) -> str:
    if isinstance(status, ExitedWithSignal):
        return f"killed with signal {status.signal}"
    return f"exit code {status.code}"


def check_status(command: Command, status: ExitStatus) -> ExitStatus:
    """Return the status, or raise if the command failed and should throw.

    Raises:
        CommandFailedError: If ``status.success`` is False and
            ``command.throw_on_failure`` is True
    """
    if status.success or not command.throw_on_failure:
        return status

    raise CommandFailedError(
        f"Command {render_argv(command.argv)} failed: {describe_status(status)}",
        command=command,
        status=status,
    )

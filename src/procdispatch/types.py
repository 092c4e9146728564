"""Command and exit status types.

procdispatch types v0.1.0

Defines the caller-facing options model, the canonical command and the
two exit status variants.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from .errors import ValidationError

__all__ = [
    "CommandOptions",
    "Command",
    "ExitedWithCode",
    "ExitedWithSignal",
    "ExitStatus",
]


class CommandOptions(BaseModel):
    """Options accepted by ``run()``.

    Attributes:
        argv: Extra arguments, appended after any positional arguments
        dir: Working directory (None = inherit the caller's)
        throw_on_failure: Raise CommandFailedError on unsuccessful exit
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    argv: list[StrictStr] = Field(default_factory=list)
    dir: StrictStr | None = None
    throw_on_failure: StrictBool = True

    @field_validator("dir", mode="before")
    @classmethod
    def fspath_dir(cls, value: Any) -> Any:
        if isinstance(value, os.PathLike):
            return os.fspath(value)
        return value


@dataclass(frozen=True)
class Command:
    """A fully resolved request to launch a process.

    Attributes:
        argv: Program and arguments (argv[0] is the executable)
        dir: Working directory, None to inherit
        throw_on_failure: Whether an unsuccessful exit raises
    """

    argv: tuple[str, ...]
    dir: str | None = None
    throw_on_failure: bool = True

    def __post_init__(self) -> None:
        if isinstance(self.argv, str):
            raise ValidationError("Run: argv must be a sequence of strings, not a string.")
        argv = tuple(self.argv)
        if not argv:
            raise ValidationError("Run: missing argv.")
        for index, arg in enumerate(argv):
            _check_os_string(arg, f"argument {index}")
        object.__setattr__(self, "argv", argv)
        if isinstance(self.dir, os.PathLike):
            object.__setattr__(self, "dir", os.fspath(self.dir))
        if self.dir is not None:
            _check_os_string(self.dir, "dir")
        if not isinstance(self.throw_on_failure, bool):
            raise ValidationError("Run: throw_on_failure must be a bool.")


def _check_os_string(value: Any, what: str) -> None:
    """Reject values that cannot be passed to exec as a UTF-8 string."""
    if not isinstance(value, str):
        raise ValidationError(f"Run: {what} must be a string, got {type(value).__name__}.")
    if "\x00" in value:
        raise ValidationError(f"Run: {what} contains a NUL character.")
    try:
        value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise ValidationError(f"Run: {what} is not valid UTF-8: {e.reason}.") from e


@dataclass(frozen=True)
class ExitedWithCode:
    """The process exited on its own with an exit code."""

    code: int
    signal: None = field(default=None, init=False)
    success: bool = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "success", self.code == 0)


@dataclass(frozen=True)
class ExitedWithSignal:
    """The process was terminated by a signal."""

    signal: int
    code: None = field(default=None, init=False)
    success: bool = field(default=False, init=False)


ExitStatus = Union[ExitedWithCode, ExitedWithSignal]

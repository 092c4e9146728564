"""Command normalization.

Collapses the call shapes accepted by ``run()`` into one canonical
``Command``:

    run("curl", "http://example.com/", "-o", "out")
    run("ninja", "all", {"dir": "target/debug"})
    run({"argv": ["git", "status"], "throw_on_failure": False})
"""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from typing import Any, Union

from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .types import Command, CommandOptions

__all__ = [
    "OptionsLike",
    "build_command",
    "parse_options",
    "render_argv",
]

OptionsLike = Union[CommandOptions, Command, Mapping[str, Any]]

# Arguments that need brackets to show where they start and end
_NEEDS_BRACKETS = re.compile(r"[\s'\"]|^$")


def _is_options(value: Any) -> bool:
    return isinstance(value, (CommandOptions, Command, Mapping))


def parse_options(value: OptionsLike) -> CommandOptions:
    """Validate an options object without touching the caller's value.

    Raises:
        ValidationError: If a field has the wrong type or is unknown
    """
    if isinstance(value, CommandOptions):
        return value
    if isinstance(value, Command):
        return CommandOptions(
            argv=list(value.argv),
            dir=value.dir,
            throw_on_failure=value.throw_on_failure,
        )
    try:
        return CommandOptions.model_validate(dict(value))
    except PydanticValidationError as e:
        raise ValidationError(f"Run: invalid options: {e}") from e


def build_command(*args: str | os.PathLike[str] | OptionsLike) -> Command:
    """Normalize positional arguments and a trailing options object.

    Args:
        *args: Argument strings, optionally followed by an options object;
            or a single options object carrying ``argv``

    Returns:
        A new Command

    Raises:
        ValidationError: If argv ends up empty or an argument is invalid
    """
    positional = list(args)
    if positional and _is_options(positional[-1]):
        options = parse_options(positional.pop())
    else:
        options = CommandOptions()

    argv: list[str] = []
    for arg in positional:
        if isinstance(arg, str):
            argv.append(arg)
        elif isinstance(arg, os.PathLike):
            argv.append(os.fspath(arg))
        else:
            raise ValidationError(
                f"Run: argument {len(argv)} must be a string, got {type(arg).__name__}."
            )
    # options.argv belongs to the caller, copy its items
    argv.extend(options.argv)
    if not argv:
        raise ValidationError("Run: missing argv.")

    return Command(
        argv=tuple(argv),
        dir=options.dir,
        throw_on_failure=options.throw_on_failure,
    )


def render_argv(argv: tuple[str, ...] | list[str]) -> str:
    """Join argv for display.

    Empty arguments and arguments containing whitespace or quotes are
    wrapped in ‹ › so their boundaries are visible without suggesting
    any particular shell quoting.
    """
    return " ".join(
        f"‹{arg}›" if _NEEDS_BRACKETS.search(arg) else arg for arg in argv
    )

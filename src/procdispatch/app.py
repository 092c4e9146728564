"""Command-line entry point.

Runs a single command through the dispatcher and exits with its status.

Usage:
    python -m procdispatch [--dir DIR] [--no-throw] -- PROGRAM [ARGS...]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import Config, get_config
from .dispatch import Dispatcher
from .engine import LocalEngine
from .errors import CommandFailedError, ProcessNotFoundError, RunError
from .policy import describe_status
from .runner import run_command
from .types import Command, ExitedWithSignal, ExitStatus

__all__ = ["configure_logging", "exit_code_for", "main"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

EXIT_NOT_FOUND = 127
EXIT_RUN_ERROR = 1


def configure_logging(config: Config) -> None:
    """Send procdispatch logs to stderr, or to a temp file in debug mode."""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # Third-party loggers stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("procdispatch").setLevel(log_level)


def exit_code_for(status: ExitStatus) -> int:
    """Map an exit status to the code this process should exit with."""
    if isinstance(status, ExitedWithSignal):
        return 128 + status.signal
    return status.code


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="procdispatch",
        description="Run a command and exit with its exit status.",
    )
    parser.add_argument("--dir", default=None, help="working directory for the command")
    parser.add_argument(
        "--no-throw",
        action="store_true",
        help="report an unsuccessful exit instead of treating it as an error",
    )
    parser.add_argument("argv", nargs=argparse.REMAINDER, help="program and arguments")
    return parser


async def _run(command: Command) -> int:
    dispatcher = Dispatcher(LocalEngine())
    try:
        status = await run_command(command, dispatcher=dispatcher)
    except CommandFailedError as e:
        logger.error(str(e))
        return exit_code_for(e.status)
    except ProcessNotFoundError as e:
        logger.error(f"Command not found: {e}")
        return EXIT_NOT_FOUND
    except RunError as e:
        logger.error(f"Run failed ({e.kind.name}): {e}")
        return EXIT_RUN_ERROR
    finally:
        await dispatcher.aclose()

    logger.info(f"Command {command.argv[0]} finished: {describe_status(status)}")
    return exit_code_for(status)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    config = get_config()
    configure_logging(config)

    args = _build_parser().parse_args(argv)
    program = list(args.argv)
    if program and program[0] == "--":
        program = program[1:]

    try:
        command = Command(argv=tuple(program), dir=args.dir, throw_on_failure=not args.no_throw)
    except RunError as e:
        logger.error(str(e))
        return 2

    return asyncio.run(_run(command))

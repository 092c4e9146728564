"""In-process execution engine.

procdispatch engine v0.1.0

Serves Run requests arriving as encoded envelopes:
- Decodes the request and starts the child with asyncio's subprocess support
- Waits for it without blocking the event loop
- Replies with an encoded RunRes, or an error envelope when the child
  could not be started

Key design points:
- Only the byte-message port is public; callers go through Dispatcher
- stdin is DEVNULL, stdout/stderr are inherited (no streaming)
- A negative return code means the child was killed by a signal, which is
  only possible where SIGNALS_SUPPORTED is True
"""

from __future__ import annotations

import asyncio
import logging
import sys
from dataclasses import dataclass, field
from typing import Dict, Optional, Set

import anyio

from .config import get_config
from .dispatch import DeliverCallback, Engine
from .errors import ChannelError, ErrorKind, ProtocolError
from .msg import (
    AnyType,
    Base,
    RunRequest,
    decode_base,
    decode_run,
    encode_base,
    encode_run_res,
    peek_cmd_id,
)
from .types import ExitedWithCode, ExitedWithSignal, ExitStatus

__all__ = [
    "IS_WINDOWS",
    "SIGNALS_SUPPORTED",
    "LocalEngine",
    "status_from_returncode",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Whether a child can terminate by signal on this platform. On Windows every
# termination is reported as an exit code.
SIGNALS_SUPPORTED = not IS_WINDOWS


def status_from_returncode(returncode: int) -> ExitStatus:
    """Convert an asyncio return code into an exit status."""
    if returncode < 0 and SIGNALS_SUPPORTED:
        return ExitedWithSignal(-returncode)
    # Windows reports NTSTATUS values as unsigned 32-bit codes
    if returncode > 0x7FFFFFFF:
        returncode -= 1 << 32
    return ExitedWithCode(returncode)


@dataclass
class LocalEngine(Engine):
    """Runs requested processes as children of the current process.

    Example:
        engine = LocalEngine()
        dispatcher = Dispatcher(engine)
        ...
        await dispatcher.aclose()  # also closes the engine

    Attributes:
        term_timeout: Seconds to wait after terminating a child on close
        kill_timeout: Seconds to wait after killing a child on close
    """

    term_timeout: Optional[float] = None
    kill_timeout: Optional[float] = None

    _deliver: Optional[DeliverCallback] = field(init=False, default=None)
    _tasks: Set[asyncio.Task] = field(init=False, default_factory=set)
    _processes: Dict[int, asyncio.subprocess.Process] = field(init=False, default_factory=dict)
    _closed: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        config = get_config()
        if self.term_timeout is None:
            self.term_timeout = config.term_timeout
        if self.kill_timeout is None:
            self.kill_timeout = config.kill_timeout

    @property
    def running_count(self) -> int:
        """Number of children currently running."""
        return len(self._processes)

    def attach(self, deliver: DeliverCallback) -> None:
        self._deliver = deliver

    def post(self, message: bytes) -> None:
        """Accept a request envelope and serve it in a background task.

        Raises:
            ChannelError: If the engine is closed or has no reply callback
            ProtocolError: If the envelope does not even carry a cmd_id
        """
        if self._closed:
            raise ChannelError("Engine is closed")
        if self._deliver is None:
            raise ChannelError("Engine has no reply callback attached")

        loop = asyncio.get_running_loop()

        try:
            base = decode_base(message)
        except ProtocolError as e:
            cmd_id = peek_cmd_id(message)
            if cmd_id is None:
                raise
            self._reply_error(cmd_id, ErrorKind.PROTOCOL, str(e))
            return

        task = loop.create_task(self._serve(base), name=f"procdispatch-cmd-{base.cmd_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _reply_error(self, cmd_id: int, kind: ErrorKind, message: str) -> None:
        self._deliver_reply(encode_base(cmd_id, AnyType.NONE, message.encode("utf-8"), kind))

    async def _serve(self, base: Base) -> None:
        try:
            if base.inner_type != AnyType.RUN:
                raise ProtocolError(f"Unsupported request type {base.inner_type.name}")
            request = decode_run(base)
            status = await self._run(base.cmd_id, request)
        except ProtocolError as e:
            self._reply_error(base.cmd_id, ErrorKind.PROTOCOL, str(e))
        except FileNotFoundError as e:
            self._reply_error(base.cmd_id, ErrorKind.NOT_FOUND, _describe_start_error(e))
        except PermissionError as e:
            self._reply_error(base.cmd_id, ErrorKind.PERMISSION_DENIED, _describe_start_error(e))
        except OSError as e:
            self._reply_error(base.cmd_id, ErrorKind.OTHER, _describe_start_error(e))
        except (ValueError, TypeError) as e:
            # e.g. "embedded null byte" from exec
            self._reply_error(base.cmd_id, ErrorKind.INVALID_INPUT, str(e))
        except asyncio.CancelledError:
            self._reply_error(base.cmd_id, ErrorKind.CHANNEL, "Engine closed before the process exited")
            raise
        except Exception as e:
            logger.exception(f"Unexpected error serving cmd_id={base.cmd_id}")
            self._reply_error(base.cmd_id, ErrorKind.OTHER, f"{type(e).__name__}: {e}")
        else:
            self._deliver_reply(encode_base(base.cmd_id, AnyType.RUN_RES, encode_run_res(status)))

    def _deliver_reply(self, reply: bytes) -> None:
        if self._deliver is None:
            raise ChannelError("Engine has no reply callback attached")
        self._deliver(reply)

    async def _run(self, cmd_id: int, request: RunRequest) -> ExitStatus:
        process = await asyncio.create_subprocess_exec(
            *request.argv,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=request.dir,
        )
        self._processes[cmd_id] = process

        logger.debug(
            f"Started subprocess pid={process.pid} cmd_id={cmd_id} "
            f"argv={request.argv[0]} cwd={request.dir}"
        )

        try:
            returncode = await process.wait()
        finally:
            self._processes.pop(cmd_id, None)

        logger.debug(
            f"Subprocess completed pid={process.pid} cmd_id={cmd_id} "
            f"returncode={returncode}"
        )
        return status_from_returncode(returncode)

    async def aclose(self) -> None:
        """Stop accepting requests and terminate children still running.

        Requests whose child is terminated here are answered normally
        (typically with a signal status); anything still unanswered after
        that is cancelled and answered with a CHANNEL error.
        """
        if self._closed:
            return
        self._closed = True

        for process in list(self._processes.values()):
            await self._terminate_process(process)

        if self._tasks:
            _, still_running = await asyncio.wait(set(self._tasks), timeout=self.kill_timeout)
            for task in still_running:
                task.cancel()
            if still_running:
                await asyncio.wait(still_running)

        logger.debug("LocalEngine closed")

    async def _terminate_process(self, process: asyncio.subprocess.Process) -> None:
        """Terminate a child, then kill it if it does not exit in time."""
        pid = process.pid
        if process.returncode is not None:
            return
        logger.debug(f"Terminating subprocess pid={pid}")

        try:
            process.terminate()
            with anyio.move_on_after(self.term_timeout):
                await process.wait()
                logger.debug(f"Subprocess terminated pid={pid} returncode={process.returncode}")
                return

            logger.debug(f"Force killing subprocess pid={pid}")
            process.kill()
            with anyio.move_on_after(self.kill_timeout) as scope:
                await process.wait()
            if scope.cancelled_caught:
                logger.warning(f"Subprocess did not exit after kill pid={pid}")
        except ProcessLookupError:
            logger.debug(f"Subprocess already exited pid={pid}")


def _describe_start_error(error: OSError) -> str:
    reason = error.strerror or str(error)
    if error.filename is not None:
        return f"{reason}: {error.filename!r}"
    return reason

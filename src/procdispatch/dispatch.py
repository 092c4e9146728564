"""Asynchronous request/response channel to the execution engine.

The engine is only reachable through byte messages. Each request gets a
``cmd_id`` in its envelope; the engine echoes it in the reply and the
dispatcher resolves the future registered under that id. Many requests
may be in flight at once and resolve in whatever order the engine
answers them.

Example:
    ```python
    dispatcher = Dispatcher(LocalEngine())
    base = await dispatcher.send_async(AnyType.RUN, encode_run(command))
    status = decode_run_res(base)
    ```
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from .errors import ChannelError, ProtocolError, RunError, error_from_kind
from .msg import MAX_CMD_ID, AnyType, Base, decode_base, encode_base, peek_cmd_id

__all__ = [
    "Engine",
    "Dispatcher",
    "get_dispatcher",
    "set_dispatcher",
    "reset_dispatcher",
]

logger = logging.getLogger(__name__)

# Callback the engine uses to hand back an encoded reply
DeliverCallback = Callable[[bytes], None]


class Engine(ABC):
    """Port to an execution engine.

    Implementations receive encoded envelopes through ``post()`` and hand
    every reply to the callback registered with ``attach()``. ``post()``
    must not block; it may be called again before earlier requests are
    answered. ``deliver`` may be called from any thread.
    """

    @abstractmethod
    def attach(self, deliver: DeliverCallback) -> None:
        """Register the callback that receives encoded replies."""

    @abstractmethod
    def post(self, message: bytes) -> None:
        """Submit an encoded request envelope."""

    async def aclose(self) -> None:
        """Release engine resources."""
        return None


class Dispatcher:
    """Matches engine replies to the requests that caused them.

    Attributes:
        engine: The engine port requests are posted to
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        self._pending: Dict[int, asyncio.Future[Base]] = {}
        self._next_id: int = 1
        self._closed: bool = False
        engine.attach(self._on_reply)

    @property
    def pending_count(self) -> int:
        """Number of requests still waiting for a reply."""
        return len(self._pending)

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _next_cmd_id(self) -> int:
        # Wraps around at u32; ids still in flight are skipped
        while True:
            cmd_id = self._next_id
            self._next_id = 1 if cmd_id >= MAX_CMD_ID else cmd_id + 1
            if cmd_id not in self._pending:
                return cmd_id

    async def send_async(self, inner_type: AnyType, payload: bytes) -> Base:
        """Send one request and wait for its reply.

        Args:
            inner_type: Payload discriminator
            payload: Encoded payload

        Returns:
            The decoded reply envelope

        Raises:
            ChannelError: If the engine cannot be reached or the dispatcher closes
            ProtocolError: If the reply is malformed
            ProcessNotFoundError: If the engine reports the executable missing
            EngineError: For any other error the engine reports
        """
        if self._closed:
            raise ChannelError("Dispatcher is closed")

        loop = asyncio.get_running_loop()
        cmd_id = self._next_cmd_id()
        future: asyncio.Future[Base] = loop.create_future()
        self._pending[cmd_id] = future

        try:
            try:
                self.engine.post(encode_base(cmd_id, inner_type, payload))
            except RunError:
                raise
            except Exception as e:
                raise ChannelError(f"Engine unreachable: {e}") from e

            logger.debug(f"Posted cmd_id={cmd_id} type={inner_type.name} ({len(payload)} bytes)")
            base = await future
        finally:
            self._pending.pop(cmd_id, None)

        if base.error_kind is not None:
            logger.debug(f"cmd_id={cmd_id} failed: {base.error_kind.name} {base.error_message}")
            raise error_from_kind(base.error_kind, base.error_message)

        logger.debug(f"cmd_id={cmd_id} resolved with {base.inner_type.name}")
        return base

    def _on_reply(self, data: bytes) -> None:
        try:
            base = decode_base(data)
        except ProtocolError as e:
            cmd_id = peek_cmd_id(data)
            future = self._pending.get(cmd_id) if cmd_id is not None else None
            if future is not None:
                self._resolve(future, exc=e)
                return
            # Nothing to route it to; the stream can no longer be trusted
            logger.error(f"Unroutable reply from engine: {e}")
            self._fail_all(lambda: ProtocolError(str(e)))
            return

        future = self._pending.get(base.cmd_id)
        if future is None:
            logger.warning(f"Dropping reply for unknown cmd_id={base.cmd_id}")
            return
        self._resolve(future, result=base)

    def _resolve(
        self,
        future: asyncio.Future[Base],
        *,
        result: Optional[Base] = None,
        exc: Optional[BaseException] = None,
    ) -> None:
        loop = future.get_loop()
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            _settle(future, result, exc)
        else:
            loop.call_soon_threadsafe(_settle, future, result, exc)

    def _fail_all(self, make_error: Callable[[], BaseException]) -> int:
        futures = list(self._pending.values())
        for future in futures:
            self._resolve(future, exc=make_error())
        return len(futures)

    async def aclose(self) -> None:
        """Fail all pending requests with ChannelError and close the engine."""
        if self._closed:
            return
        self._closed = True
        failed = self._fail_all(lambda: ChannelError("Dispatcher closed"))
        if failed:
            logger.info(f"Dispatcher closed with {failed} pending request(s)")
        await self.engine.aclose()


def _settle(
    future: asyncio.Future[Base],
    result: Optional[Base],
    exc: Optional[BaseException],
) -> None:
    if future.done():
        return
    if exc is not None:
        future.set_exception(exc)
    else:
        future.set_result(result)


# Process-wide dispatcher (created lazily)
_dispatcher: Dispatcher | None = None


def get_dispatcher() -> Dispatcher:
    """Get the shared dispatcher, backed by a LocalEngine by default."""
    global _dispatcher
    if _dispatcher is None or _dispatcher.is_closed:
        from .engine import LocalEngine

        _dispatcher = Dispatcher(LocalEngine())
    return _dispatcher


def set_dispatcher(dispatcher: Dispatcher | None) -> Dispatcher | None:
    """Replace the shared dispatcher, returning the previous one."""
    global _dispatcher
    previous = _dispatcher
    _dispatcher = dispatcher
    return previous


def reset_dispatcher() -> None:
    """Forget the shared dispatcher (used by tests)."""
    set_dispatcher(None)

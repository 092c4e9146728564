"""Pytest configuration and fixtures."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from procdispatch.dispatch import Dispatcher, Engine, reset_dispatcher  # noqa: E402
from procdispatch.errors import ErrorKind  # noqa: E402
from procdispatch.msg import AnyType, Base, decode_base, encode_base, encode_run_res  # noqa: E402
from procdispatch.types import ExitStatus  # noqa: E402


class FakeEngine(Engine):
    """Engine that records requests and replies only when told to."""

    def __init__(self) -> None:
        self.deliver = None
        self.posted: list[Base] = []
        self.post_error: Exception | None = None
        self.closed = False

    def attach(self, deliver) -> None:
        self.deliver = deliver

    def post(self, message: bytes) -> None:
        if self.post_error is not None:
            raise self.post_error
        self.posted.append(decode_base(message))

    def reply_raw(self, data: bytes) -> None:
        self.deliver(data)

    def reply_status(self, cmd_id: int, status: ExitStatus) -> None:
        self.deliver(encode_base(cmd_id, AnyType.RUN_RES, encode_run_res(status)))

    def reply_error(self, cmd_id: int, kind: ErrorKind, message: str) -> None:
        self.deliver(encode_base(cmd_id, AnyType.NONE, message.encode("utf-8"), kind))

    async def wait_for_posts(self, count: int) -> None:
        """Yield to the loop until ``count`` requests have been posted."""
        for _ in range(100):
            if len(self.posted) >= count:
                return
            await asyncio.sleep(0)
        raise AssertionError(f"expected {count} posted requests, got {len(self.posted)}")

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_engine() -> FakeEngine:
    return FakeEngine()


@pytest.fixture
def dispatcher(fake_engine: FakeEngine) -> Dispatcher:
    """Dispatcher wired to a FakeEngine."""
    return Dispatcher(fake_engine)


@pytest.fixture(autouse=True)
def _reset_shared_dispatcher():
    """Each test starts without a shared dispatcher."""
    reset_dispatcher()
    yield
    reset_dispatcher()

"""Binary messages exchanged with the execution engine.

procdispatch msg v0.1.0

Layout (little-endian):

    Base      cmd_id:u32 inner_type:u8 error_kind:u8 payload_len:u32 payload
    String    len:u32 utf8-bytes
    Run       argc:u32 String*argc has_dir:u8 [String]
    RunRes    status:u8 exit_code:i32 exit_signal:i32

An error reply has ``error_kind != 0`` and a UTF-8 message as payload.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from enum import IntEnum

from .errors import ErrorKind, ProtocolError
from .types import Command, ExitedWithCode, ExitedWithSignal, ExitStatus

__all__ = [
    "AnyType",
    "StatusTag",
    "Base",
    "RunRequest",
    "encode_base",
    "decode_base",
    "peek_cmd_id",
    "encode_run",
    "decode_run",
    "encode_run_res",
    "decode_run_res",
]

BASE_HEADER = struct.Struct("<IBBI")
RUN_RES_STRUCT = struct.Struct("<Bii")
_U32 = struct.Struct("<I")
_U8 = struct.Struct("<B")

MAX_CMD_ID = 0xFFFFFFFF


class AnyType(IntEnum):
    """Discriminator of the Base envelope payload."""

    NONE = 0
    RUN = 1
    RUN_RES = 2


class StatusTag(IntEnum):
    EXITED_WITH_CODE = 1
    EXITED_WITH_SIGNAL = 2


@dataclass(frozen=True)
class Base:
    """Decoded envelope.

    Attributes:
        cmd_id: Correlation id chosen by the sender of the request
        inner_type: Payload discriminator
        payload: Raw payload bytes
        error_kind: Error reported by the engine, None on success
    """

    cmd_id: int
    inner_type: AnyType
    payload: bytes = b""
    error_kind: ErrorKind | None = None

    @property
    def error_message(self) -> str:
        return self.payload.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class RunRequest:
    argv: tuple[str, ...]
    dir: str | None = None


class _Reader:
    """Cursor over a payload; any overrun is a ProtocolError."""

    def __init__(self, data: bytes, what: str) -> None:
        self._data = data
        self._offset = 0
        self._what = what

    def unpack(self, st: struct.Struct) -> tuple:
        if self._offset + st.size > len(self._data):
            raise ProtocolError(f"Truncated {self._what} message")
        values = st.unpack_from(self._data, self._offset)
        self._offset += st.size
        return values

    def string(self) -> str:
        (length,) = self.unpack(_U32)
        end = self._offset + length
        if end > len(self._data):
            raise ProtocolError(f"Truncated string in {self._what} message")
        raw = self._data[self._offset:end]
        self._offset = end
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Invalid UTF-8 in {self._what} message") from e

    def finish(self) -> None:
        if self._offset != len(self._data):
            raise ProtocolError(f"Trailing bytes in {self._what} message")


def _pack_string(value: str) -> bytes:
    raw = value.encode("utf-8")
    return _U32.pack(len(raw)) + raw


# =============================================================================
# Envelope
# =============================================================================


def encode_base(
    cmd_id: int,
    inner_type: AnyType,
    payload: bytes = b"",
    error_kind: ErrorKind | None = None,
) -> bytes:
    kind = 0 if error_kind is None else int(error_kind)
    return BASE_HEADER.pack(cmd_id, int(inner_type), kind, len(payload)) + payload


def decode_base(data: bytes) -> Base:
    """Decode an envelope.

    Raises:
        ProtocolError: If the header is short, the length disagrees with the
            buffer, or a discriminator is unknown
    """
    if len(data) < BASE_HEADER.size:
        raise ProtocolError(f"Message too short ({len(data)} bytes)")
    cmd_id, inner_type, kind, length = BASE_HEADER.unpack_from(data)
    payload = data[BASE_HEADER.size:]
    if len(payload) != length:
        raise ProtocolError(
            f"Payload length mismatch for cmd_id={cmd_id}: "
            f"header says {length}, got {len(payload)}"
        )
    try:
        inner = AnyType(inner_type)
        error_kind = ErrorKind(kind) if kind else None
    except ValueError as e:
        raise ProtocolError(f"Unknown discriminator for cmd_id={cmd_id}: {e}") from e
    return Base(cmd_id=cmd_id, inner_type=inner, payload=payload, error_kind=error_kind)


def peek_cmd_id(data: bytes) -> int | None:
    """Read just the cmd_id of a message, None if even that is missing."""
    if len(data) < _U32.size:
        return None
    return _U32.unpack_from(data)[0]


# =============================================================================
# Run / RunRes
# =============================================================================


def encode_run(command: Command) -> bytes:
    """Encode the Run payload for a command. ``dir=None`` is encoded as absent."""
    parts = [_U32.pack(len(command.argv))]
    parts.extend(_pack_string(arg) for arg in command.argv)
    if command.dir is None:
        parts.append(_U8.pack(0))
    else:
        parts.append(_U8.pack(1))
        parts.append(_pack_string(command.dir))
    return b"".join(parts)


def decode_run(base: Base) -> RunRequest:
    if base.inner_type != AnyType.RUN:
        raise ProtocolError(f"Expected Run, got {base.inner_type.name}")
    reader = _Reader(base.payload, "Run")
    (argc,) = reader.unpack(_U32)
    argv = tuple(reader.string() for _ in range(argc))
    (has_dir,) = reader.unpack(_U8)
    directory = reader.string() if has_dir else None
    reader.finish()
    if not argv:
        raise ProtocolError("Run request with empty argv")
    return RunRequest(argv=argv, dir=directory)


def encode_run_res(status: ExitStatus) -> bytes:
    if isinstance(status, ExitedWithSignal):
        return RUN_RES_STRUCT.pack(StatusTag.EXITED_WITH_SIGNAL, 0, status.signal)
    return RUN_RES_STRUCT.pack(StatusTag.EXITED_WITH_CODE, status.code, 0)


def decode_run_res(base: Base) -> ExitStatus:
    """Decode the engine's reply to a Run request.

    Raises:
        ProtocolError: If the reply is not a RunRes or its status tag is unknown
    """
    if base.inner_type != AnyType.RUN_RES:
        raise ProtocolError(f"Expected RunRes, got {base.inner_type.name}")
    reader = _Reader(base.payload, "RunRes")
    tag, exit_code, exit_signal = reader.unpack(RUN_RES_STRUCT)
    reader.finish()

    if tag == StatusTag.EXITED_WITH_CODE:
        return ExitedWithCode(exit_code)
    if tag == StatusTag.EXITED_WITH_SIGNAL:
        return ExitedWithSignal(exit_signal)
    raise ProtocolError(f"Unknown exit status tag {tag}")

"""Wire message tests.

Test coverage:
- Run request encoding (argv order, absent vs empty dir)
- RunRes decoding into exit statuses
- Rejection of malformed or mistyped messages
"""

from __future__ import annotations

import struct

import pytest

from procdispatch.command import build_command
from procdispatch.errors import ErrorKind, ProtocolError
from procdispatch.msg import (
    BASE_HEADER,
    RUN_RES_STRUCT,
    AnyType,
    StatusTag,
    decode_base,
    decode_run,
    decode_run_res,
    encode_base,
    encode_run,
    encode_run_res,
    peek_cmd_id,
)
from procdispatch.types import Command, ExitedWithCode, ExitedWithSignal


def _run_res(tag: int, code: int = 0, signal: int = 0, cmd_id: int = 1):
    return decode_base(encode_base(cmd_id, AnyType.RUN_RES, RUN_RES_STRUCT.pack(tag, code, signal)))


class TestRunEncoding:
    """Encoding of Run requests."""

    def test_call_shapes_encode_identically(self):
        positional = encode_run(build_command("a", "b", {"dir": "x"}))
        descriptor = encode_run(build_command({"argv": ["a", "b"], "dir": "x"}))
        assert positional == descriptor

    def test_layout(self):
        payload = encode_run(Command(argv=("ls", "-l")))
        assert payload == (
            struct.pack("<I", 2)
            + struct.pack("<I", 2) + b"ls"
            + struct.pack("<I", 2) + b"-l"
            + b"\x00"
        )

    def test_absent_dir_differs_from_empty_dir(self):
        absent = encode_run(Command(argv=("ls",), dir=None))
        empty = encode_run(Command(argv=("ls",), dir=""))
        assert absent != empty
        assert absent.endswith(b"\x00")
        assert empty.endswith(b"\x01" + struct.pack("<I", 0))

    def test_decoded_by_engine_side(self):
        command = Command(argv=("python", "-c", "print('hé')", ""), dir="/tmp/work")
        base = decode_base(encode_base(7, AnyType.RUN, encode_run(command)))
        request = decode_run(base)
        assert request.argv == command.argv
        assert request.dir == "/tmp/work"

    def test_decode_run_rejects_trailing_bytes(self):
        payload = encode_run(Command(argv=("ls",))) + b"\x00"
        with pytest.raises(ProtocolError, match="Trailing"):
            decode_run(decode_base(encode_base(1, AnyType.RUN, payload)))

    def test_decode_run_rejects_empty_argv(self):
        payload = struct.pack("<I", 0) + b"\x00"
        with pytest.raises(ProtocolError, match="empty argv"):
            decode_run(decode_base(encode_base(1, AnyType.RUN, payload)))


class TestRunResDecoding:
    """Decoding of RunRes replies into exit statuses."""

    def test_exit_code_zero(self):
        status = decode_run_res(_run_res(StatusTag.EXITED_WITH_CODE, code=0))
        assert status == ExitedWithCode(0)
        assert status.success is True
        assert status.code == 0
        assert status.signal is None

    def test_exit_code_nonzero(self):
        status = decode_run_res(_run_res(StatusTag.EXITED_WITH_CODE, code=42))
        assert status.success is False
        assert status.code == 42
        assert status.signal is None

    def test_exit_signal(self):
        status = decode_run_res(_run_res(StatusTag.EXITED_WITH_SIGNAL, signal=9))
        assert status == ExitedWithSignal(9)
        assert status.success is False
        assert status.code is None
        assert status.signal == 9

    def test_negative_exit_code(self):
        status = decode_run_res(_run_res(StatusTag.EXITED_WITH_CODE, code=-1073741819))
        assert status.code == -1073741819

    def test_encode_matches_decode(self):
        base = decode_base(encode_base(3, AnyType.RUN_RES, encode_run_res(ExitedWithSignal(15))))
        assert decode_run_res(base) == ExitedWithSignal(15)

    def test_wrong_inner_type(self):
        base = decode_base(encode_base(1, AnyType.RUN, encode_run_res(ExitedWithCode(0))))
        with pytest.raises(ProtocolError, match="Expected RunRes"):
            decode_run_res(base)

    def test_unknown_status_tag(self):
        with pytest.raises(ProtocolError, match="Unknown exit status tag"):
            decode_run_res(_run_res(9))

    def test_truncated_payload(self):
        base = decode_base(encode_base(1, AnyType.RUN_RES, b"\x01\x00"))
        with pytest.raises(ProtocolError, match="Truncated"):
            decode_run_res(base)


class TestEnvelope:
    """Base envelope framing."""

    def test_error_envelope(self):
        base = decode_base(encode_base(5, AnyType.NONE, b"not found", ErrorKind.NOT_FOUND))
        assert base.cmd_id == 5
        assert base.error_kind == ErrorKind.NOT_FOUND
        assert base.error_message == "not found"

    def test_success_envelope_has_no_error(self):
        base = decode_base(encode_base(5, AnyType.RUN_RES, encode_run_res(ExitedWithCode(0))))
        assert base.error_kind is None

    def test_too_short(self):
        with pytest.raises(ProtocolError, match="too short"):
            decode_base(b"\x01\x00")

    def test_length_mismatch(self):
        data = BASE_HEADER.pack(1, AnyType.RUN_RES, 0, 100) + b"\x00"
        with pytest.raises(ProtocolError, match="length mismatch"):
            decode_base(data)

    def test_unknown_inner_type(self):
        with pytest.raises(ProtocolError, match="Unknown discriminator"):
            decode_base(BASE_HEADER.pack(1, 42, 0, 0))

    def test_unknown_error_kind(self):
        with pytest.raises(ProtocolError, match="Unknown discriminator"):
            decode_base(BASE_HEADER.pack(1, AnyType.NONE, 200, 0))

    def test_peek_cmd_id(self):
        assert peek_cmd_id(BASE_HEADER.pack(77, 42, 0, 0)) == 77
        assert peek_cmd_id(b"\x01") is None

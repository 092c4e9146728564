"""Failure policy tests."""

from __future__ import annotations

import pytest

from procdispatch.errors import CommandFailedError, ErrorKind, RunError
from procdispatch.policy import check_status, describe_status
from procdispatch.types import Command, ExitedWithCode, ExitedWithSignal


class TestCheckStatus:
    """When a status is returned and when it is raised."""

    def test_success_returned(self):
        status = ExitedWithCode(0)
        assert check_status(Command(argv=("true",)), status) is status

    def test_success_returned_without_throw(self):
        status = ExitedWithCode(0)
        command = Command(argv=("true",), throw_on_failure=False)
        assert check_status(command, status) is status

    def test_failure_returned_without_throw(self):
        status = ExitedWithCode(3)
        command = Command(argv=("false",), throw_on_failure=False)
        assert check_status(command, status) is status

    def test_signal_returned_without_throw(self):
        status = ExitedWithSignal(9)
        command = Command(argv=("sleep", "10"), throw_on_failure=False)
        assert check_status(command, status) is status

    def test_exit_code_raises(self):
        command = Command(argv=("python", "-c", "import sys;sys.exit(41 + 1)"))
        status = ExitedWithCode(42)

        with pytest.raises(CommandFailedError) as exc_info:
            check_status(command, status)

        error = exc_info.value
        assert isinstance(error, RunError)
        assert error.kind == ErrorKind.COMMAND_FAILED
        assert error.command is command
        assert error.status is status
        assert str(error) == "Command python -c ‹import sys;sys.exit(41 + 1)› failed: exit code 42"

    def test_signal_raises(self):
        command = Command(argv=("sleep", "10"))
        with pytest.raises(CommandFailedError, match="killed with signal 9$") as exc_info:
            check_status(command, ExitedWithSignal(9))
        assert exc_info.value.status.signal == 9
        assert exc_info.value.status.code is None

    def test_message_brackets_ambiguous_arguments(self):
        command = Command(argv=("printf", "", "a b", "'q'"))
        with pytest.raises(CommandFailedError) as exc_info:
            check_status(command, ExitedWithCode(1))
        assert str(exc_info.value) == "Command printf ‹› ‹a b› ‹'q'› failed: exit code 1"


class TestDescribeStatus:
    def test_code(self):
        assert describe_status(ExitedWithCode(7)) == "exit code 7"

    def test_signal(self):
        assert describe_status(ExitedWithSignal(15)) == "killed with signal 15"

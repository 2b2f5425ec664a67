"""Tests for bounded command execution and failure classification."""

import sys
import time

import pytest

from netprobe.errors import ProbeError
from netprobe.executor import classify_failure, run_command
from netprobe.models import FailureKind


def python_command(code):
    return [sys.executable, "-c", code]


class TestClassifyFailure:
    """Keyword classification of non-zero exits."""

    def test_destination_unreachable_is_nonzero_exit(self):
        """Unreachable without a timeout keyword is not a timeout."""
        stdout = b"From 192.168.1.1 icmp_seq=1 Destination Host Unreachable\n"
        assert classify_failure(stdout, b"") is FailureKind.NONZERO_EXIT

    def test_timed_out_in_stderr(self):
        assert classify_failure(b"", b"Request Timed Out") is FailureKind.TIMEOUT

    def test_timeout_in_stdout(self):
        assert classify_failure(b"ping: timeout waiting for reply", b"") is FailureKind.TIMEOUT

    def test_unknown_host(self):
        assert classify_failure(b"", b"ping: unknown host example.invalid") is FailureKind.UNKNOWN_HOST

    def test_unknown_host_in_stdout(self):
        assert classify_failure(b"ping: Unknown Host foo", None) is FailureKind.UNKNOWN_HOST

    def test_permission(self):
        assert classify_failure(b"", b"ping: socket: Permission denied") is FailureKind.PERMISSION_DENIED

    def test_timeout_wins_over_unknown_host(self):
        assert classify_failure(b"unknown host", b"timed out") is FailureKind.TIMEOUT

    def test_empty_streams(self):
        assert classify_failure(None, None) is FailureKind.NONZERO_EXIT

    def test_accepts_text(self):
        assert classify_failure("TIMEOUT", "") is FailureKind.TIMEOUT


class TestRunCommand:
    """End-to-end child process execution."""

    def test_success_returns_stdout_bytes(self):
        output = run_command(python_command("print('time=1.5 ms')"), timeout=10)
        assert output.strip() == b"time=1.5 ms"

    def test_nonzero_exit_with_unreachable_message(self):
        code = (
            "import sys; "
            "print('From 10.0.0.1 icmp_seq=1 Destination Host Unreachable'); "
            "sys.exit(1)"
        )
        with pytest.raises(ProbeError) as excinfo:
            run_command(python_command(code), timeout=10)

        assert excinfo.value.kind is FailureKind.NONZERO_EXIT
        assert excinfo.value.label == "nonzero_exit"

    def test_nonzero_exit_with_unknown_host_on_stderr(self):
        code = "import sys; sys.stderr.write('ping: unknown host nowhere\\n'); sys.exit(2)"
        with pytest.raises(ProbeError) as excinfo:
            run_command(python_command(code), timeout=10)

        assert excinfo.value.kind is FailureKind.UNKNOWN_HOST

    def test_child_exceeding_timeout_is_killed(self):
        """The call returns near the timeout, not when the child would finish."""
        started = time.monotonic()
        with pytest.raises(ProbeError) as excinfo:
            run_command(python_command("import time; time.sleep(30)"), timeout=0.5)
        elapsed = time.monotonic() - started

        assert excinfo.value.kind is FailureKind.TIMEOUT
        assert elapsed < 10

    def test_missing_binary_is_io_error(self):
        with pytest.raises(ProbeError) as excinfo:
            run_command(["/nonexistent/netprobe-missing-binary"], timeout=1)

        assert excinfo.value.kind is FailureKind.IO_ERROR
        assert excinfo.value.io_kind == "not_found"
        assert excinfo.value.label == "io_error_not_found"

    def test_invalid_timeout(self):
        with pytest.raises(ValueError, match="timeout must be positive"):
            run_command(["true"], timeout=0)

    def test_empty_command(self):
        with pytest.raises(ValueError, match="command must not be empty"):
            run_command([], timeout=1)

"""Bounded execution of external probe commands."""

import logging
import subprocess
from collections.abc import Callable, Sequence

from netprobe.errors import ProbeError, io_error_kind
from netprobe.models import FailureKind

logger = logging.getLogger(__name__)

# Signature of run_command(), injectable into collectors.
Runner = Callable[[Sequence[str], float], bytes]


def classify_failure(stdout: bytes | str | None, stderr: bytes | str | None) -> FailureKind:
    """Classify a non-zero exit by looking for known keywords in its output.

    Both streams are searched case-insensitively. Timeout keywords win over
    "unknown host", which wins over "permission".

    Args:
        stdout: Captured standard output of the child
        stderr: Captured standard error of the child

    Returns:
        The matching FailureKind, NONZERO_EXIT if no keyword is present
    """
    text = "\n".join(_as_text(stream) for stream in (stdout, stderr)).lower()

    if "timed out" in text or "timeout" in text:
        return FailureKind.TIMEOUT
    if "unknown host" in text:
        return FailureKind.UNKNOWN_HOST
    if "permission" in text:
        return FailureKind.PERMISSION_DENIED
    return FailureKind.NONZERO_EXIT


def run_command(command: Sequence[str], timeout: float) -> bytes:
    """Run a command as a child process and return its stdout.

    The child is killed and reaped if it outlives ``timeout``. Nothing here
    touches metrics; callers classify and record.

    Args:
        command: Argument vector, executable first
        timeout: Upper bound on the child's runtime in seconds

    Returns:
        Raw stdout bytes of a child that exited with status 0

    Raises:
        ValueError: If timeout is not positive or command is empty
        ProbeError: If the child timed out, could not be spawned, or exited
            with a non-zero status
    """
    if timeout <= 0:
        raise ValueError("timeout must be positive")
    argv = list(command)
    if not argv:
        raise ValueError("command must not be empty")

    logger.debug("Executing: %s (timeout=%.2fs)", " ".join(argv), timeout)

    try:
        result = subprocess.run(
            argv,
            capture_output=True,
            timeout=timeout,
            check=False,
            shell=False,
        )
    except subprocess.TimeoutExpired:
        logger.debug("Command timed out after %.2fs: %s", timeout, argv[0])
        raise ProbeError(FailureKind.TIMEOUT) from None
    except OSError as e:
        kind = io_error_kind(e)
        logger.debug("Command could not be started: %s (%s)", argv[0], kind)
        raise ProbeError(FailureKind.IO_ERROR, kind) from e

    if result.returncode != 0:
        kind = classify_failure(result.stdout, result.stderr)
        logger.debug(
            "Command failed: %s, returncode=%d, classified=%s",
            argv[0],
            result.returncode,
            kind.value,
        )
        raise ProbeError(kind)

    return result.stdout


def _as_text(stream: bytes | str | None) -> str:
    if not stream:
        return ""
    if isinstance(stream, bytes):
        return stream.decode("utf-8", errors="replace")
    return stream

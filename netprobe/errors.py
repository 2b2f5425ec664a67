"""Exception types raised by NetProbe components."""

import errno

from netprobe.models import FailureKind, failure_label

# OS error classes reported as ``io_error_<class>``; anything else is "other".
_IO_ERROR_KINDS = {
    errno.ENOENT: "not_found",
    errno.EACCES: "permission_denied",
    errno.EPERM: "permission_denied",
    errno.ENOEXEC: "invalid_executable",
    errno.EINTR: "interrupted",
    errno.EAGAIN: "would_block",
    errno.EPIPE: "broken_pipe",
    errno.ENOMEM: "out_of_memory",
}


def io_error_kind(exc: OSError) -> str:
    """Map an OSError to a bounded snake_case error class."""
    return _IO_ERROR_KINDS.get(exc.errno, "other")


class ConfigError(ValueError):
    """Invalid process configuration. Fatal at startup."""


class ProbeError(Exception):
    """A probe command could not produce usable output."""

    def __init__(self, kind: FailureKind, io_kind: str | None = None):
        self.kind = kind
        self.io_kind = io_kind
        super().__init__(self.label)

    @property
    def label(self) -> str:
        return failure_label(self.kind, self.io_kind)


class DecodeError(ValueError):
    """A speed-test document did not match the expected schema.

    ``cause`` is a short machine-readable reason, never the full parser
    diagnostic.
    """

    def __init__(self, cause: str):
        self.cause = cause
        super().__init__(self.label)

    @property
    def label(self) -> str:
        return f"json_error_{self.cause}"


class ExporterError(OSError):
    """The metrics HTTP listener could not be started."""

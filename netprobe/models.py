"""Data models for NetProbe probe outcomes."""

from dataclasses import dataclass
from enum import Enum


class FailureKind(Enum):
    """Closed set of probe failure classifications.

    Values are the snake_case strings used as metric label values.
    """

    TIMEOUT = "timeout"
    UNKNOWN_HOST = "unknown_host"
    PERMISSION_DENIED = "permission_denied"
    NONZERO_EXIT = "nonzero_exit"
    PARSE_ERROR = "parse_error"
    IO_ERROR = "io_error"


def failure_label(kind: FailureKind, io_kind: str | None = None) -> str:
    """Render a failure as a bounded metric label value.

    IO errors carry the OS error class as a suffix, e.g. ``io_error_not_found``.
    """
    if kind is FailureKind.IO_ERROR:
        return f"{kind.value}_{io_kind or 'other'}"
    return kind.value


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of probing a single target once.

    Exactly one of ``latency`` (seconds) and ``failure`` is set.
    """

    target: str
    latency: float | None = None
    failure: FailureKind | None = None
    io_kind: str | None = None

    def __post_init__(self):
        """Enforce the success/failure exclusivity."""
        if (self.latency is None) == (self.failure is None):
            raise ValueError("exactly one of latency or failure must be set")
        if self.latency is not None and self.latency < 0:
            raise ValueError("latency must not be negative")

    @classmethod
    def success(cls, target: str, latency: float) -> "ProbeOutcome":
        return cls(target=target, latency=latency)

    @classmethod
    def failed(
        cls, target: str, kind: FailureKind, io_kind: str | None = None
    ) -> "ProbeOutcome":
        return cls(target=target, failure=kind, io_kind=io_kind)

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def error_type(self) -> str | None:
        """Metric label for a failed outcome, None on success."""
        if self.failure is None:
            return None
        return failure_label(self.failure, self.io_kind)

"""ICMP reachability collector for NetProbe using the system ping command."""

import logging
import platform
import re
from math import ceil

from netprobe.errors import ProbeError
from netprobe.executor import Runner, run_command
from netprobe.models import FailureKind, ProbeOutcome

logger = logging.getLogger(__name__)

# "time=12.3 ms", "time<1 ms", "time = 25 ms"
_TIME_PATTERN = re.compile(r"\btime\s*[=<]\s*<?\s*(\d+(?:\.\d+)?)\s*ms", re.IGNORECASE)

# "rtt min/avg/max/mdev = a/b/c/d ms", "round-trip min/avg/max = a/b/c ms"
_SUMMARY_PATTERN = re.compile(
    r"\b(?:rtt|round[- ]?trip)\b[^=\n]*=\s*"
    r"<?(\d+(?:\.\d+)?)/<?(\d+(?:\.\d+)?)(?:/<?\d+(?:\.\d+)?)*\s*ms",
    re.IGNORECASE,
)

# Multiplier from seconds to the unit each ping flavour expects after -W.
# Systems not listed behave like Linux (iputils, BusyBox).
PING_TIMEOUT_SCALE = {
    "linux": 1,
    "darwin": 1000,
    "freebsd": 1000,
    "openbsd": 1000,
    "netbsd": 1000,
    "dragonfly": 1000,
}


def parse_ping_latency_ms(output: str | bytes | None) -> float | None:
    """Parse round-trip latency from ping command output (pure function).

    Patterns are tried in order and the first match wins:

    1. A per-reply ``time=12.3 ms`` or ``time<1 ms`` marker. A ``<`` reading
       is taken at its stated bound, so ``time<1 ms`` is 1 ms.
    2. A summary line such as ``rtt min/avg/max/mdev = a/b/c/d ms`` or
       ``round-trip min/avg/max/stddev = a/b/c/d ms``; the second field
       (the average) is returned.

    Args:
        output: Raw ping stdout, as text or bytes

    Returns:
        Latency in milliseconds, or None if neither pattern matched

    Examples:
        >>> parse_ping_latency_ms("64 bytes from 8.8.8.8: time=12.3 ms")
        12.3
        >>> parse_ping_latency_ms("round-trip min/avg/max = 1.0/2.5/4.0 ms")
        2.5
        >>> parse_ping_latency_ms("Request timed out.")
    """
    if not output:
        return None
    if isinstance(output, bytes):
        output = output.decode("utf-8", errors="replace")

    match = _TIME_PATTERN.search(output)
    if match:
        return float(match.group(1))

    match = _SUMMARY_PATTERN.search(output)
    if match:
        return float(match.group(2))

    return None


def parse_latency(output: str | bytes | None) -> float | None:
    """Parse round-trip latency in seconds, see parse_ping_latency_ms()."""
    latency_ms = parse_ping_latency_ms(output)
    if latency_ms is None:
        return None
    return latency_ms / 1000.0


def ping_timeout_value(system: str, timeout: float) -> int:
    """Convert a timeout in seconds to the integer ping expects for -W.

    Rounds up and never returns less than 1.
    """
    scale = PING_TIMEOUT_SCALE.get(system.lower(), 1)
    return max(1, ceil(round(timeout * scale, 6)))


def build_ping_args(system: str, timeout: float, target: str) -> list[str]:
    """Build the ping command line for a platform (pure function).

    Args:
        system: Platform name as reported by platform.system()
        timeout: Reply timeout in seconds
        target: Host to ping

    Returns:
        Argument vector: ping -c 1 -W <timeout> <target>
    """
    return ["ping", "-c", "1", "-W", str(ping_timeout_value(system, timeout)), target]


class PingCollector:
    """Collector that measures latency with one ICMP echo per probe.

    Failures never raise; they come back as failed ProbeOutcome objects
    carrying a FailureKind.
    """

    def __init__(
        self,
        timeout: float = 5.0,
        system: str | None = None,
        runner: Runner = run_command,
        grace: float = 0.5,
    ):
        """Initialize ping collector.

        Args:
            timeout: Reply timeout handed to ping, in seconds
            system: Platform name override; detected when None
            runner: Command runner, run_command() unless testing
            grace: Extra seconds the child may run past ``timeout`` so that
                ping's own timeout fires first and its output gets classified
        """
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        if grace < 0:
            raise ValueError("grace must not be negative")

        self.timeout = timeout
        self.grace = grace
        self.system = (system or platform.system()).lower()
        self._runner = runner

        logger.debug("PingCollector initialized: timeout=%.2fs, system=%s", timeout, self.system)

    def build_command(self, target: str) -> list[str]:
        return build_ping_args(self.system, self.timeout, target)

    def probe(self, target: str) -> ProbeOutcome:
        """Ping the target once.

        Args:
            target: Hostname or address

        Returns:
            ProbeOutcome with latency in seconds, or the failure kind
        """
        if not target or not target.strip():
            return ProbeOutcome.failed(target, FailureKind.UNKNOWN_HOST)

        try:
            stdout = self._runner(self.build_command(target), self.timeout + self.grace)
        except ProbeError as e:
            logger.debug("Ping failed: host=%s, error=%s", target, e.label)
            return ProbeOutcome.failed(target, e.kind, e.io_kind)

        latency = parse_latency(stdout)
        if latency is None:
            logger.debug(
                "Parse failed: host=%s, output_preview=%r",
                target,
                stdout[:100] if stdout else "(empty)",
            )
            return ProbeOutcome.failed(target, FailureKind.PARSE_ERROR)

        logger.debug("Parsed latency: host=%s, latency=%.3fms", target, latency * 1000.0)
        return ProbeOutcome.success(target, latency)

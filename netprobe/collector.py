"""Collector abstractions for NetProbe measurement sources."""

from typing import TYPE_CHECKING, Protocol

from netprobe.models import ProbeOutcome

if TYPE_CHECKING:
    from netprobe.speedtest import SpeedtestOutcome


class Collector(Protocol):
    """Protocol for per-target reachability collectors."""

    def probe(self, target: str) -> ProbeOutcome:
        """Probe the target once. Must not raise for probe failures."""
        ...


class BandwidthCollector(Protocol):
    """Protocol for target-less bandwidth collectors."""

    def probe(self) -> "SpeedtestOutcome":
        """Run one bandwidth measurement. Must not raise for probe failures."""
        ...

"""Prometheus metrics sink for NetProbe.

The sink owns its CollectorRegistry instead of using the process-wide default
one, so every component that reads or writes metrics receives it explicitly.
"""

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from netprobe.models import ProbeOutcome

logger = logging.getLogger(__name__)


class MetricKind(Enum):
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"


_METRIC_TYPES = {
    MetricKind.COUNTER: Counter,
    MetricKind.GAUGE: Gauge,
    MetricKind.HISTOGRAM: Histogram,
}


@dataclass(frozen=True)
class MetricDef:
    """Static definition of an instrument."""

    name: str
    kind: MetricKind
    documentation: str
    label_keys: tuple[str, ...] = ()


class MetricsSink:
    """Registry of named, labelled instruments.

    Instruments are created lazily on first use and live as long as the sink.
    A name always resolves to the same instrument. Creation is serialised by a
    lock; value updates rely on prometheus_client's per-child locking, so the
    sink can be written from several threads at once.
    """

    content_type = CONTENT_TYPE_LATEST

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()
        self._lock = threading.Lock()
        self._instruments = {}  # {name: (kind, label_keys, metric)}

    def get_or_create(
        self,
        name: str,
        kind: MetricKind,
        documentation: str = "",
        label_keys: Iterable[str] = (),
    ):
        """Return the instrument called ``name``, creating it if needed.

        Raises:
            ValueError: If the name is already registered with a different
                kind or different label keys
        """
        label_keys = tuple(label_keys)
        with self._lock:
            existing = self._instruments.get(name)
            if existing is not None:
                existing_kind, existing_keys, metric = existing
                if existing_kind is not kind or existing_keys != label_keys:
                    raise ValueError(
                        f"metric {name!r} already registered as {existing_kind.value} "
                        f"with labels {existing_keys}"
                    )
                return metric

            metric = _METRIC_TYPES[kind](
                name, documentation or name, label_keys, registry=self.registry
            )
            self._instruments[name] = (kind, label_keys, metric)
            logger.debug("Metric created: %s (%s, labels=%s)", name, kind.value, label_keys)
            return metric

    def instrument(self, definition: MetricDef):
        return self.get_or_create(
            definition.name, definition.kind, definition.documentation, definition.label_keys
        )

    def set(self, definition: MetricDef, value: float, labels: Mapping[str, str] | None = None):
        self._child(definition, labels).set(value)

    def observe(self, definition: MetricDef, value: float, labels: Mapping[str, str] | None = None):
        self._child(definition, labels).observe(value)

    def inc(self, definition: MetricDef, labels: Mapping[str, str] | None = None, amount: float = 1.0):
        self._child(definition, labels).inc(amount)

    def snapshot(self) -> bytes:
        """Render every instrument in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def _child(self, definition: MetricDef, labels: Mapping[str, str] | None):
        metric = self.instrument(definition)
        if definition.label_keys:
            return metric.labels(**(labels or {}))
        return metric


PING_DELAY = MetricDef(
    "ping_delay_seconds", MetricKind.HISTOGRAM, "ping delay in seconds", ("hostname",)
)
PING_FAILS = MetricDef(
    "ping_fails", MetricKind.COUNTER, "number of failed pings", ("hostname", "error_type")
)
SPEED = MetricDef("speed_bps", MetricKind.GAUGE, "speed in bytes per second", ("direction",))
SPEEDTEST_BYTES = MetricDef(
    "speedtest_bytes", MetricKind.GAUGE, "speedtest bytes transferred", ("direction",)
)
SPEEDTEST_ELAPSED = MetricDef(
    "speedtest_elapsed_seconds", MetricKind.GAUGE, "elapsed time in seconds", ("direction",)
)
SPEEDTEST_PACKET_LOSS = MetricDef(
    "speedtest_packet_loss", MetricKind.GAUGE, "packet loss percentage"
)
SPEEDTEST_LATENCY = MetricDef(
    "speedtest_latency_seconds",
    MetricKind.HISTOGRAM,
    "speed test latency in seconds",
    ("state", "stat"),
)
SPEEDTEST_FAILS = MetricDef(
    "speedtest_fails", MetricKind.COUNTER, "number of failed speed tests", ("error_type",)
)
CONNECTION_ERRORS = MetricDef(
    "exporter_connection_errors",
    MetricKind.COUNTER,
    "number of metrics connections dropped on I/O errors",
    ("error_type",),
)


class ProbeMetrics:
    """The fixed instrument set written by the probe loops and the exporter.

    Every label value comes from a bounded set: configured targets, failure
    labels, transfer directions and latency statistic names.
    """

    def __init__(self, sink: MetricsSink):
        self.sink = sink

    def record_ping(self, outcome: ProbeOutcome):
        if outcome.ok:
            self.sink.observe(PING_DELAY, outcome.latency, {"hostname": outcome.target})
        else:
            self.sink.inc(
                PING_FAILS, {"hostname": outcome.target, "error_type": outcome.error_type}
            )

    def record_speedtest(self, report):
        """Write the gauges and latency observations of one speed test."""
        for direction, stream in (("download", report.download), ("upload", report.upload)):
            labels = {"direction": direction}
            self.sink.set(SPEED, stream.bandwidth, labels)
            self.sink.set(SPEEDTEST_BYTES, stream.bytes_transferred, labels)
            self.sink.set(SPEEDTEST_ELAPSED, stream.elapsed.total_seconds(), labels)

        self.sink.set(SPEEDTEST_PACKET_LOSS, report.packet_loss)

        phases = (
            ("idle", report.ping.stats()),
            ("download", report.download.latency.stats()),
            ("upload", report.upload.latency.stats()),
        )
        for state, stats in phases:
            for stat, value in stats.items():
                self.sink.observe(
                    SPEEDTEST_LATENCY, value.total_seconds(), {"state": state, "stat": stat}
                )

    def record_speedtest_failure(self, error_type: str):
        self.sink.inc(SPEEDTEST_FAILS, {"error_type": error_type})

    def record_connection_error(self, error_type: str):
        self.sink.inc(CONNECTION_ERRORS, {"error_type": error_type})

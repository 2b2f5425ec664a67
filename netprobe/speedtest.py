"""Bandwidth collector for NetProbe using the Ookla speedtest CLI."""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, PlainValidator, ValidationError

from netprobe.errors import DecodeError, ProbeError
from netprobe.executor import Runner, run_command

logger = logging.getLogger(__name__)

SPEEDTEST_ARGS = ("--accept-license", "--accept-gdpr", "--format=json")


def _millis(value) -> timedelta:
    try:
        return timedelta(milliseconds=value)
    except OverflowError:
        raise ValueError("milliseconds out of range") from None


def _fractional_millis(value) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("expected fractional milliseconds")
    return _millis(value)


def _whole_millis(value) -> timedelta:
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("expected whole milliseconds")
    return _millis(value)


# Latency statistics are reported as float milliseconds, elapsed times as
# integer milliseconds.
FractionalMillis = Annotated[timedelta, PlainValidator(_fractional_millis)]
WholeMillis = Annotated[timedelta, PlainValidator(_whole_millis)]


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class IdleLatency(_Record):
    """Latency of the idle connection, measured before the transfers."""

    latency: FractionalMillis = timedelta(0)
    low: FractionalMillis
    high: FractionalMillis
    jitter: FractionalMillis

    def stats(self) -> dict[str, timedelta]:
        return {"latency": self.latency, "low": self.low, "high": self.high, "jitter": self.jitter}


class StreamLatency(_Record):
    """Loaded latency during one transfer direction."""

    mean: FractionalMillis = Field(alias="iqm")
    low: FractionalMillis
    high: FractionalMillis
    jitter: FractionalMillis

    def stats(self) -> dict[str, timedelta]:
        return {"latency": self.mean, "low": self.low, "high": self.high, "jitter": self.jitter}


class StreamResult(_Record):
    """Throughput figures for one transfer direction."""

    bandwidth: int = Field(ge=0, description="bytes per second")
    bytes_transferred: int = Field(alias="bytes", ge=0)
    elapsed: WholeMillis
    latency: StreamLatency


class Server(_Record):
    host: str
    ip: str
    port: int = Field(ge=0, le=65535)
    name: str
    location: str
    country: str


class SpeedtestReport(_Record):
    """Decoded result document of one speed test."""

    ping: IdleLatency
    download: StreamResult
    upload: StreamResult
    packet_loss: float = Field(default=0.0, alias="packetLoss")
    server: Server


def decode(raw: str | bytes) -> SpeedtestReport:
    """Decode the speedtest JSON document.

    Args:
        raw: stdout of ``speedtest --format=json``

    Returns:
        The decoded SpeedtestReport

    Raises:
        DecodeError: If the document is not JSON or violates the schema. The
            cause is the pydantic error type of the first problem found, such
            as ``json_invalid`` or ``missing``.
    """
    try:
        return SpeedtestReport.model_validate_json(raw)
    except ValidationError as e:
        errors = e.errors()
        cause = errors[0]["type"] if errors else "invalid"
        logger.debug("Speedtest document rejected: %d error(s), first=%s", len(errors), cause)
        raise DecodeError(cause) from e


@dataclass(frozen=True)
class SpeedtestOutcome:
    """Result of one bandwidth probe: a report or a failure label."""

    report: SpeedtestReport | None = None
    error_type: str | None = None

    @property
    def ok(self) -> bool:
        return self.report is not None


class SpeedtestCollector:
    """Runs the speedtest executable and decodes its JSON output."""

    def __init__(self, command: str = "./speedtest", timeout: float = 60.0, runner: Runner = run_command):
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.command = command
        self.timeout = timeout
        self._runner = runner

    def build_command(self) -> list[str]:
        return [self.command, *SPEEDTEST_ARGS]

    def probe(self) -> SpeedtestOutcome:
        try:
            stdout = self._runner(self.build_command(), self.timeout)
        except ProbeError as e:
            return SpeedtestOutcome(error_type=e.label)

        try:
            report = decode(stdout)
        except DecodeError as e:
            return SpeedtestOutcome(error_type=e.label)

        return SpeedtestOutcome(report=report)

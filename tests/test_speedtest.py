"""Tests for the speed test decoder and collector."""

import json
from datetime import timedelta

import pytest

from netprobe.errors import DecodeError, ProbeError
from netprobe.models import FailureKind
from netprobe.speedtest import SpeedtestCollector, SpeedtestReport, decode


def millis(value: timedelta) -> float:
    return value / timedelta(milliseconds=1)


def without(document: str, *path: str) -> str:
    """Return the document with the field at ``path`` removed."""
    data = json.loads(document)
    node = data
    for key in path[:-1]:
        node = node[key]
    del node[path[-1]]
    return json.dumps(data)


def replaced(document: str, value, *path: str) -> str:
    data = json.loads(document)
    node = data
    for key in path[:-1]:
        node = node[key]
    node[path[-1]] = value
    return json.dumps(data)


class TestDecode:
    """Decoding a complete document."""

    def test_decodes_full_document(self, speedtest_document):
        report = decode(speedtest_document)

        assert isinstance(report, SpeedtestReport)
        assert report.download.bandwidth == 115116205
        assert report.upload.bandwidth == 12071584
        assert report.download.bytes_transferred == 1162635603
        assert report.upload.bytes_transferred == 97041069
        assert report.packet_loss == 0.5

    def test_server_identity(self, speedtest_document):
        server = decode(speedtest_document).server

        assert server.host == "speedtest.ams.t-mobile.nl"
        assert server.ip == "2a02:4240::e"
        assert server.port == 8080
        assert server.name == "Odido"
        assert server.location == "Amsterdam"
        assert server.country == "Netherlands"

    def test_latencies_are_fractional_milliseconds(self, speedtest_document):
        report = decode(speedtest_document)

        assert millis(report.ping.latency) == pytest.approx(17.634)
        assert millis(report.ping.jitter) == pytest.approx(3.245)
        assert millis(report.download.latency.mean) == pytest.approx(69.730)
        assert millis(report.upload.latency.high) == pytest.approx(322.531)

    def test_elapsed_is_whole_milliseconds(self, speedtest_document):
        report = decode(speedtest_document)

        assert report.download.elapsed == timedelta(milliseconds=10312)
        assert report.upload.elapsed.total_seconds() == pytest.approx(8.101)

    def test_accepts_bytes(self, speedtest_document):
        assert decode(speedtest_document.encode()).server.port == 8080

    def test_stats_names(self, speedtest_document):
        report = decode(speedtest_document)

        assert list(report.ping.stats()) == ["latency", "low", "high", "jitter"]
        assert report.download.latency.stats()["latency"] == report.download.latency.mean

    @pytest.mark.parametrize("value", [0.001, 1.5, 17.634, 395.03, 12345.678])
    def test_latency_round_trip(self, speedtest_document, value):
        """Milliseconds survive the conversion to timedelta and back."""
        report = decode(replaced(speedtest_document, value, "ping", "low"))
        assert millis(report.ping.low) == pytest.approx(value, abs=1e-3)


class TestDecodeDefaults:
    """Optional fields take documented defaults."""

    def test_missing_packet_loss_defaults_to_zero(self, speedtest_document):
        report = decode(without(speedtest_document, "packetLoss"))
        assert report.packet_loss == 0.0

    def test_missing_idle_latency_defaults_to_zero(self, speedtest_document):
        report = decode(without(speedtest_document, "ping", "latency"))
        assert report.ping.latency == timedelta(0)


class TestDecodeErrors:
    """Malformed documents raise DecodeError with a short cause."""

    @pytest.mark.parametrize(
        "path",
        [
            ("ping", "jitter"),
            ("ping", "low"),
            ("download", "bandwidth"),
            ("download", "elapsed"),
            ("upload", "latency", "iqm"),
            ("upload", "latency", "jitter"),
            ("server", "host"),
            ("server", "port"),
            ("server", "country"),
            ("server",),
        ],
    )
    def test_missing_required_field(self, speedtest_document, path):
        with pytest.raises(DecodeError) as excinfo:
            decode(without(speedtest_document, *path))

        assert excinfo.value.cause == "missing"
        assert excinfo.value.label == "json_error_missing"

    def test_invalid_json(self):
        with pytest.raises(DecodeError) as excinfo:
            decode("{not json")

        assert excinfo.value.label == "json_error_json_invalid"

    def test_empty_output(self):
        with pytest.raises(DecodeError):
            decode(b"")

    def test_fractional_elapsed_rejected(self, speedtest_document):
        with pytest.raises(DecodeError):
            decode(replaced(speedtest_document, 10.5, "download", "elapsed"))

    def test_string_latency_rejected(self, speedtest_document):
        with pytest.raises(DecodeError):
            decode(replaced(speedtest_document, "fast", "ping", "high"))

    @pytest.mark.parametrize(
        "value, path",
        [
            (1e300, ("ping", "low")),
            (10**20, ("download", "elapsed")),
            (-(10**20), ("upload", "elapsed")),
        ],
    )
    def test_out_of_range_duration_rejected(self, speedtest_document, value, path):
        with pytest.raises(DecodeError) as excinfo:
            decode(replaced(speedtest_document, value, *path))

        assert excinfo.value.label == "json_error_value_error"

    @pytest.mark.parametrize("port", [-1, 65536])
    def test_server_port_out_of_range(self, speedtest_document, port):
        with pytest.raises(DecodeError) as excinfo:
            decode(replaced(speedtest_document, port, "server", "port"))

        assert excinfo.value.label.startswith("json_error_")

    def test_cause_is_short(self, speedtest_document):
        """The cause never carries the parser diagnostic text."""
        with pytest.raises(DecodeError) as excinfo:
            decode(replaced(speedtest_document, "not-a-number", "download", "bandwidth"))

        assert " " not in excinfo.value.cause
        assert excinfo.value.label.startswith("json_error_")


class TestSpeedtestCollector:
    """Collector combines the runner and the decoder."""

    def test_command_line(self):
        collector = SpeedtestCollector("/opt/speedtest", timeout=30)
        assert collector.build_command() == [
            "/opt/speedtest",
            "--accept-license",
            "--accept-gdpr",
            "--format=json",
        ]

    def test_success(self, speedtest_document):
        calls = []

        def runner(command, timeout):
            calls.append(timeout)
            return speedtest_document.encode()

        outcome = SpeedtestCollector(timeout=45, runner=runner).probe()

        assert outcome.ok
        assert outcome.error_type is None
        assert outcome.report.server.name == "Odido"
        assert calls == [45]

    def test_execution_failure(self):
        def runner(command, timeout):
            raise ProbeError(FailureKind.TIMEOUT)

        outcome = SpeedtestCollector(runner=runner).probe()

        assert not outcome.ok
        assert outcome.error_type == "timeout"

    def test_decode_failure(self):
        outcome = SpeedtestCollector(runner=lambda command, timeout: b"[]").probe()

        assert not outcome.ok
        assert outcome.error_type.startswith("json_error_")

    def test_out_of_range_elapsed_is_decode_failure(self, speedtest_document):
        document = replaced(speedtest_document, 10**20, "download", "elapsed").encode()
        outcome = SpeedtestCollector(runner=lambda command, timeout: document).probe()

        assert not outcome.ok
        assert outcome.error_type == "json_error_value_error"

    def test_invalid_timeout(self):
        with pytest.raises(ValueError, match="timeout must be positive"):
            SpeedtestCollector(timeout=0)

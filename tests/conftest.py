"""Shared fixtures for NetProbe tests."""

import time

import pytest
from PySide6.QtCore import QCoreApplication, QEventLoop

from netprobe.metrics import MetricsSink, ProbeMetrics
from netprobe.models import ProbeOutcome

SPEEDTEST_DOCUMENT = """{
    "type": "result",
    "timestamp": "2025-10-26T11:36:26Z",
    "ping": {
        "jitter": 3.245,
        "latency": 17.634,
        "low": 13.379,
        "high": 21.874
    },
    "download": {
        "bandwidth": 115116205,
        "bytes": 1162635603,
        "elapsed": 10312,
        "latency": {"iqm": 69.730, "low": 11.473, "high": 395.030, "jitter": 24.770}
    },
    "upload": {
        "bandwidth": 12071584,
        "bytes": 97041069,
        "elapsed": 8101,
        "latency": {"iqm": 177.390, "low": 10.735, "high": 322.531, "jitter": 52.124}
    },
    "packetLoss": 0.5,
    "server": {
        "id": 52365,
        "host": "speedtest.ams.t-mobile.nl",
        "port": 8080,
        "name": "Odido",
        "location": "Amsterdam",
        "country": "Netherlands",
        "ip": "2a02:4240::e"
    }
}"""


@pytest.fixture(scope="session")
def qapp():
    """Create QCoreApplication instance for tests."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    yield app


@pytest.fixture
def wait_until(qapp):
    """Pump the Qt event loop until a predicate holds or the timeout expires."""

    def _wait_until(predicate, timeout=5.0):
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            QCoreApplication.processEvents(QEventLoop.ProcessEventsFlag.AllEvents, 50)
            if predicate():
                return True
            time.sleep(0.005)
        return predicate()

    return _wait_until


@pytest.fixture
def sink():
    return MetricsSink()


@pytest.fixture
def metrics(sink):
    return ProbeMetrics(sink)


@pytest.fixture
def speedtest_document():
    return SPEEDTEST_DOCUMENT


class ScriptedCollector:
    """Collector returning predefined latencies (seconds) or failures per host."""

    def __init__(self, results=None, default=0.010):
        self.results = dict(results or {})
        self.default = default
        self.calls = []

    def probe(self, target):
        self.calls.append(target)
        result = self.results.get(target, self.default)
        if isinstance(result, float):
            return ProbeOutcome.success(target, result)
        return ProbeOutcome.failed(target, result)


@pytest.fixture
def scripted_collector():
    return ScriptedCollector

"""Probe loops: timer-driven cycles executed on a bounded thread pool."""

import logging
import threading
from enum import Enum
from functools import partial

from PySide6.QtCore import QObject, QThreadPool, QTimer, Signal

from netprobe.collector import BandwidthCollector, Collector
from netprobe.metrics import ProbeMetrics
from netprobe.models import FailureKind, ProbeOutcome
from netprobe.speedtest import SpeedtestOutcome
from netprobe.workers import ProbeWorker

logger = logging.getLogger(__name__)


class LoopState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    WAITING = "waiting"
    STOPPING = "stopping"
    STOPPED = "stopped"


class ProbeLoop(QObject):
    """Base class for a probe loop.

    A cycle submits one worker per task to the loop's own thread pool. Once
    every worker has reported back, a single-shot timer waits ``interval``
    seconds before the next cycle, so cycles never overlap.

    State machine::

        IDLE -start-> RUNNING -cycle done-> WAITING -timer-> RUNNING ...
        WAITING -stop-> STOPPED
        RUNNING -stop-> STOPPING -in-flight workers done-> STOPPED

    Results arrive through queued Qt signals and are recorded on the thread
    that owns the loop.
    """

    cycle_completed = Signal(int)  # cycle number
    stopped = Signal()

    def __init__(self, name: str, interval: float, max_concurrent: int = 1, parent=None):
        """Initialize probe loop.

        Args:
            name: Loop name used in log messages
            interval: Wait between the end of a cycle and the next, in seconds
            max_concurrent: Maximum number of probes running at once
            parent: Qt parent object
        """
        super().__init__(parent)
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.name = name
        self.interval = interval
        self.max_concurrent = max_concurrent
        self.state = LoopState.IDLE
        self.cycles = 0

        self._cancelled = threading.Event()
        self._workers = set()

        self.thread_pool = QThreadPool(self)
        self.thread_pool.setMaxThreadCount(max_concurrent)

        self.timer = QTimer(self)
        self.timer.setSingleShot(True)
        self.timer.timeout.connect(self._run_cycle)

    @property
    def interval_ms(self) -> int:
        return max(1, round(self.interval * 1000))

    @property
    def in_flight(self) -> int:
        return len(self._workers)

    @property
    def is_stopped(self) -> bool:
        return self.state is LoopState.STOPPED

    def start(self):
        """Start the first cycle immediately."""
        if self.state is not LoopState.IDLE:
            return

        self._cancelled.clear()
        self.state = LoopState.RUNNING
        logger.info("%s loop started: interval=%.1fs", self.name, self.interval)
        self._run_cycle()

    def stop(self):
        """Stop the loop without starting another cycle.

        A pending wait is cancelled at once. Probes already running finish,
        bounded by their own timeout; queued probes are skipped.
        """
        if self.state in (LoopState.STOPPING, LoopState.STOPPED):
            return

        self.timer.stop()
        self._cancelled.set()

        if self._workers:
            self.state = LoopState.STOPPING
            logger.info("%s loop stopping: %d probe(s) in flight", self.name, len(self._workers))
        else:
            self._set_stopped()

    def _cycle_tasks(self) -> list:
        """Return (key, callable) pairs to probe in one cycle."""
        raise NotImplementedError

    def _record(self, key: str, result):
        raise NotImplementedError

    def _record_crash(self, key: str, error_name: str):
        raise NotImplementedError

    def _run_cycle(self):
        if self.state not in (LoopState.RUNNING, LoopState.WAITING):
            return

        self.state = LoopState.RUNNING
        tasks = self._cycle_tasks()
        if not tasks:
            self._finish_cycle()
            return

        logger.debug("%s cycle %d: scheduling %d probe(s)", self.name, self.cycles + 1, len(tasks))
        for key, task in tasks:
            worker = ProbeWorker(key, task, self._cancelled)
            worker.signals.result_ready.connect(self._on_result_ready)
            worker.signals.error.connect(self._on_error)
            worker.signals.finished.connect(self._on_finished)
            self._workers.add(worker)
            self.thread_pool.start(worker)

    def _on_result_ready(self, worker, result):
        self._record(worker.key, result)

    def _on_error(self, worker, error_name):
        self._record_crash(worker.key, error_name)

    def _on_finished(self, worker):
        self._workers.discard(worker)
        if self._workers:
            return

        if self.state is LoopState.STOPPING:
            self._set_stopped()
        elif self.state is LoopState.RUNNING:
            self._finish_cycle()

    def _finish_cycle(self):
        self.cycles += 1
        self.cycle_completed.emit(self.cycles)
        # A slot connected to cycle_completed may have stopped the loop
        if self.state is not LoopState.RUNNING:
            return
        self.state = LoopState.WAITING
        self.timer.start(self.interval_ms)

    def _set_stopped(self):
        self.state = LoopState.STOPPED
        logger.info("%s loop stopped after %d cycle(s)", self.name, self.cycles)
        self.stopped.emit()


class ReachabilityLoop(ProbeLoop):
    """Pings every configured target once per cycle."""

    outcome_recorded = Signal(object)  # ProbeOutcome

    def __init__(
        self,
        collector: Collector,
        metrics: ProbeMetrics,
        targets,
        delay: float = 5.0,
        max_concurrent: int = 4,
        parent=None,
    ):
        """Initialize reachability loop.

        Args:
            collector: Collector producing one ProbeOutcome per target
            metrics: Metrics the outcomes are recorded into
            targets: Hosts to probe; blanks and duplicates are dropped,
                order is kept
            delay: Seconds to wait between cycles
            max_concurrent: Maximum number of pings running at once
            parent: Qt parent object
        """
        super().__init__("ping", delay, max_concurrent, parent)
        self.collector = collector
        self.metrics = metrics
        self.targets = tuple(dict.fromkeys(t.strip() for t in targets if t and t.strip()))

    def _cycle_tasks(self):
        return [(target, partial(self.collector.probe, target)) for target in self.targets]

    def _record(self, key, outcome):
        self.metrics.record_ping(outcome)
        if outcome.ok:
            logger.debug("pinging %s took %.3fms", outcome.target, outcome.latency * 1000.0)
        else:
            logger.warning("failed to ping %s: %s", outcome.target, outcome.error_type)
        self.outcome_recorded.emit(outcome)

    def _record_crash(self, key, error_name):
        self._record(key, ProbeOutcome.failed(key, FailureKind.IO_ERROR, "other"))


class BandwidthLoop(ProbeLoop):
    """Runs one speed test per cycle."""

    outcome_recorded = Signal(object)  # SpeedtestOutcome

    def __init__(
        self,
        collector: BandwidthCollector,
        metrics: ProbeMetrics,
        interval: float = 300.0,
        parent=None,
    ):
        super().__init__("speedtest", interval, 1, parent)
        self.collector = collector
        self.metrics = metrics

    def _cycle_tasks(self):
        return [("speedtest", self.collector.probe)]

    def _record(self, key, outcome):
        if outcome.ok:
            server = outcome.report.server
            logger.info(
                "speedtest performed against %s:%d (%s) - %s (%s, %s)",
                server.host,
                server.port,
                server.ip,
                server.name,
                server.location,
                server.country,
            )
            self.metrics.record_speedtest(outcome.report)
        else:
            logger.warning("failed to perform speedtest: %s", outcome.error_type)
            self.metrics.record_speedtest_failure(outcome.error_type)
        self.outcome_recorded.emit(outcome)

    def _record_crash(self, key, error_name):
        self._record(key, SpeedtestOutcome(error_type="io_error_other"))

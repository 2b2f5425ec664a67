"""Coordinated shutdown of the probe loops and the exporter."""

import logging
import signal
import time

from PySide6.QtCore import QObject, QTimer, Signal

logger = logging.getLogger(__name__)

# Qt's event loop does not return to the interpreter on its own, so Python
# signal handlers only run when some Python slot executes.
HEARTBEAT_INTERVAL_MS = 200
DRAIN_POLL_INTERVAL_MS = 50


class ShutdownCoordinator(QObject):
    """Turns SIGINT/SIGTERM into an ordered, bounded shutdown.

    On request the exporter stops accepting, every loop is stopped, and the
    coordinator waits until the loops report stopped and the exporter has no
    connections left, or until ``drain_timeout`` seconds have passed. It then
    quits the application. A second signal while draining quits at once.
    """

    shutdown_requested = Signal()
    finished = Signal(bool)  # True if everything drained before the deadline

    def __init__(self, loops, exporter, drain_timeout: float, app=None, parent=None):
        super().__init__(parent)
        if drain_timeout < 0:
            raise ValueError("drain_timeout must not be negative")

        self.loops = list(loops)
        self.exporter = exporter
        self.drain_timeout = drain_timeout
        self.shutting_down = False
        self.done = False
        self._app = app
        self._deadline = None
        self._previous_handlers = {}

        self._heartbeat = QTimer(self)
        self._heartbeat.setInterval(HEARTBEAT_INTERVAL_MS)
        self._heartbeat.timeout.connect(lambda: None)

        self._drain_timer = QTimer(self)
        self._drain_timer.setInterval(DRAIN_POLL_INTERVAL_MS)
        self._drain_timer.timeout.connect(self._check_drained)

    def install_signal_handlers(self, signals=(signal.SIGINT, signal.SIGTERM)):
        for signum in signals:
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)
        self._heartbeat.start()

    def restore_signal_handlers(self):
        for signum, handler in self._previous_handlers.items():
            signal.signal(signum, handler)
        self._previous_handlers.clear()
        self._heartbeat.stop()

    def is_drained(self) -> bool:
        return all(loop.is_stopped for loop in self.loops) and self.exporter.active_connections == 0

    def request_shutdown(self):
        if self.shutting_down:
            return

        self.shutting_down = True
        self._deadline = time.monotonic() + self.drain_timeout
        self.shutdown_requested.emit()

        self.exporter.close()
        for loop in self.loops:
            loop.stop()

        if not self._check_drained():
            self._drain_timer.start()

    def _handle_signal(self, signum, frame):
        name = signal.Signals(signum).name
        if self.shutting_down:
            logger.warning("Received %s again, exiting without waiting", name)
            self._complete(False)
            return
        logger.info("Received %s, shutting down...", name)
        self.request_shutdown()

    def _check_drained(self) -> bool:
        if self.done:
            return True
        if self.is_drained():
            logger.info("Shutdown complete")
            self._complete(True)
            return True
        if time.monotonic() >= self._deadline:
            busy = [loop.name for loop in self.loops if not loop.is_stopped]
            logger.warning(
                "Shutdown deadline of %.1fs exceeded: loops still busy=%s, open connections=%d",
                self.drain_timeout,
                busy,
                self.exporter.active_connections,
            )
            self._complete(False)
            return True
        return False

    def _complete(self, drained: bool):
        if self.done:
            return
        self.done = True
        self._drain_timer.stop()
        self.restore_signal_handlers()
        self.finished.emit(drained)
        if self._app is not None:
            self._app.quit()

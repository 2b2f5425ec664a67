"""Worker classes for background probe tasks."""

import logging
import threading
from collections.abc import Callable

from PySide6.QtCore import QObject, QRunnable, Signal

logger = logging.getLogger(__name__)


class WorkerSignals(QObject):
    """Signals for communicating between worker threads and the main thread."""

    result_ready = Signal(object, object)  # (worker, result)
    error = Signal(object, str)  # (worker, exception type name)
    finished = Signal(object)  # (worker), always emitted last


class ProbeWorker(QRunnable):
    """Worker that runs one probe call in a thread pool thread.

    A worker whose ``cancelled`` event is set before it starts skips the probe
    and only emits ``finished``.
    """

    def __init__(self, key: str, task: Callable[[], object], cancelled: threading.Event):
        super().__init__()
        self.key = key
        self.task = task
        self.cancelled = cancelled
        self.skipped = False
        self.signals = WorkerSignals()
        # The owning loop holds the reference until finished is delivered.
        self.setAutoDelete(False)

    def run(self):
        """Execute the probe in a background thread."""
        try:
            if self.cancelled.is_set():
                self.skipped = True
                logger.debug("Worker skipped: key=%s", self.key)
                return

            logger.debug("Worker starting: key=%s", self.key)

            # This may block up to the probe timeout
            result = self.task()

            self.signals.result_ready.emit(self, result)
            logger.debug("Worker completed: key=%s", self.key)

        except Exception as e:
            logger.exception("Worker exception: key=%s, error=%s", self.key, str(e))
            self.signals.error.emit(self, type(e).__name__)

        finally:
            self.signals.finished.emit(self)

"""Minimal HTTP exporter serving the metrics snapshot on every connection."""

import logging
import re

from PySide6.QtCore import QObject, QTimer, Signal
from PySide6.QtNetwork import QAbstractSocket, QHostAddress, QTcpServer, QTcpSocket

from netprobe.errors import ExporterError
from netprobe.metrics import MetricsSink, ProbeMetrics

logger = logging.getLogger(__name__)

# Only this much of the first request line is kept for the access log
MAX_REQUEST_LINE = 8192


def socket_error_label(error) -> str:
    """Snake-case label for a QAbstractSocket.SocketError value."""
    name = getattr(error, "name", None) or str(error).rsplit(".", 1)[-1]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def build_response(sink: MetricsSink) -> bytes:
    """Build the full HTTP response carrying the current snapshot."""
    body = sink.snapshot()
    header = (
        "HTTP/1.1 200 OK\r\n"
        f"Content-Type: {sink.content_type}\r\n"
        f"Content-Length: {len(body)}\r\n"
        "Connection: close\r\n"
        "\r\n"
    )
    return header.encode("ascii") + body


class ScrapeConnection(QObject):
    """Handles one accepted connection.

    Answers on the first bytes received, without waiting for the end of the
    request line, writes the snapshot, then closes. Method and path
    are ignored. The whole exchange must finish within ``deadline`` seconds or
    the socket is aborted.
    """

    finished = Signal(object)  # (ScrapeConnection)

    def __init__(
        self,
        socket: QTcpSocket,
        sink: MetricsSink,
        metrics: ProbeMetrics | None = None,
        deadline: float = 5.0,
        parent=None,
    ):
        super().__init__(parent)
        self.socket = socket
        self.peer = socket.peerAddress().toString()
        self.request_line = None
        self._sink = sink
        self._metrics = metrics
        self._done = False

        self._deadline = QTimer(self)
        self._deadline.setSingleShot(True)
        self._deadline.setInterval(max(1, round(deadline * 1000)))
        self._deadline.timeout.connect(self._on_deadline)

    def start(self):
        self.socket.readyRead.connect(self._on_ready_read)
        self.socket.disconnected.connect(self._finish)
        self.socket.errorOccurred.connect(self._on_error)
        self._deadline.start()
        if self.socket.bytesAvailable():
            self._on_ready_read()

    def _on_ready_read(self):
        if self._done:
            return
        if self.request_line is not None:
            # Headers and bodies are not interpreted
            self.socket.readAll()
            return

        raw = bytes(self.socket.readLine(MAX_REQUEST_LINE).data())
        self.socket.readAll()
        self.request_line = raw.decode("latin-1").rstrip("\r\n")
        self._respond()

    def _respond(self):
        self.socket.write(build_response(self._sink))
        logger.info("%s %s", self.peer, self.request_line)
        # Closes once the pending bytes are written
        self.socket.disconnectFromHost()

    def _on_error(self, error):
        if self._done:
            return
        if error == QAbstractSocket.SocketError.RemoteHostClosedError and self.request_line is not None:
            return
        self._fail(socket_error_label(error))

    def _on_deadline(self):
        if not self._done:
            self._fail("deadline_exceeded")

    def _fail(self, error_type: str):
        logger.warning("Dropping metrics connection from %s: %s", self.peer, error_type)
        if self._metrics is not None:
            self._metrics.record_connection_error(error_type)
        self.socket.abort()
        self._finish()

    def _finish(self):
        if self._done:
            return
        self._done = True
        self._deadline.stop()
        self.socket.deleteLater()
        self.finished.emit(self)


class MetricsExporter(QObject):
    """TCP server answering every connection with the metrics snapshot.

    Connections are handled on the event loop with non-blocking sockets, so a
    slow client never stalls the accept loop or the probe loops.
    """

    def __init__(
        self,
        sink: MetricsSink,
        metrics: ProbeMetrics | None = None,
        write_deadline: float = 5.0,
        parent=None,
    ):
        super().__init__(parent)
        if write_deadline <= 0:
            raise ValueError("write_deadline must be positive")

        self.sink = sink
        self.metrics = metrics
        self.write_deadline = write_deadline
        self._connections = set()

        self.server = QTcpServer(self)
        self.server.newConnection.connect(self._on_new_connection)

    @property
    def port(self) -> int:
        return self.server.serverPort()

    @property
    def is_listening(self) -> bool:
        return self.server.isListening()

    @property
    def active_connections(self) -> int:
        return len(self._connections)

    def listen(self, port: int, address: str = "0.0.0.0"):
        """Bind the listener.

        Args:
            port: TCP port, 0 picks a free one
            address: Local address to bind

        Raises:
            ExporterError: If the port cannot be bound
        """
        if not self.server.listen(QHostAddress(address), port):
            raise ExporterError(
                f"unable to start HTTP server on {address}:{port}: {self.server.errorString()}"
            )
        logger.info("Listening to connections on port %d", self.port)

    def close(self):
        """Stop accepting connections. In-flight connections are kept."""
        if self.server.isListening():
            self.server.close()
            logger.info(
                "HTTP server stopped accepting connections (%d in flight)",
                len(self._connections),
            )

    def _on_new_connection(self):
        while self.server.hasPendingConnections():
            socket = self.server.nextPendingConnection()
            if socket is None:
                break
            connection = ScrapeConnection(socket, self.sink, self.metrics, self.write_deadline, self)
            connection.finished.connect(self._on_connection_finished)
            self._connections.add(connection)
            connection.start()

    def _on_connection_finished(self, connection):
        self._connections.discard(connection)
        connection.deleteLater()

"""Entry point for the NetProbe daemon."""

import logging
import sys

from PySide6.QtCore import QCoreApplication

from netprobe.collector_ping import PingCollector
from netprobe.config import Settings
from netprobe.errors import ConfigError, ExporterError
from netprobe.exporter import MetricsExporter
from netprobe.logging_config import configure_logging
from netprobe.metrics import MetricsSink, ProbeMetrics
from netprobe.scheduler import BandwidthLoop, ReachabilityLoop
from netprobe.shutdown import ShutdownCoordinator
from netprobe.speedtest import SpeedtestCollector

EXIT_LISTEN_FAILED = 1
EXIT_CONFIG_ERROR = 2

# Configure logging early
configure_logging()
logger = logging.getLogger(__name__)


def drain_timeout(settings: Settings, ping_grace: float) -> float:
    """Upper bound on shutdown: the slowest in-flight probe plus the grace period."""
    probe_bound = settings.timeout + ping_grace
    if settings.speedtest_enabled:
        probe_bound = max(probe_bound, settings.speedtest_timeout)
    return probe_bound + settings.shutdown_grace


def main(argv=None) -> int:
    """Run the daemon until SIGINT or SIGTERM. Returns the exit code."""
    try:
        settings = Settings.from_env()
    except ConfigError as e:
        logger.error("Invalid configuration: %s", e)
        return EXIT_CONFIG_ERROR

    app = QCoreApplication.instance() or QCoreApplication(argv if argv is not None else sys.argv)

    sink = MetricsSink()
    metrics = ProbeMetrics(sink)

    exporter = MetricsExporter(sink, metrics)
    try:
        exporter.listen(settings.port)
    except ExporterError as e:
        logger.error("%s", e)
        return EXIT_LISTEN_FAILED

    collector = PingCollector(timeout=settings.timeout)
    loops = [
        ReachabilityLoop(
            collector,
            metrics,
            settings.targets,
            delay=settings.delay,
            max_concurrent=settings.ping_concurrency,
        )
    ]
    if settings.speedtest_enabled:
        loops.append(
            BandwidthLoop(
                SpeedtestCollector(settings.speedtest_command, settings.speedtest_timeout),
                metrics,
                interval=settings.speedtest_interval,
            )
        )
    else:
        logger.info("Speedtest loop disabled (SPEEDTEST_ENABLED=false)")

    coordinator = ShutdownCoordinator(
        loops, exporter, drain_timeout(settings, collector.grace), app=app
    )
    coordinator.install_signal_handlers()

    logger.info(
        "Probing %d target(s) every %.1fs: %s",
        len(settings.targets),
        settings.delay,
        ", ".join(settings.targets),
    )
    for loop in loops:
        loop.start()

    return app.exec()


if __name__ == "__main__":
    sys.exit(main())

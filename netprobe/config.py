"""Environment configuration for NetProbe."""

import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass

from netprobe.errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_TARGETS = ("8.8.8.8",)

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    """Process configuration, loaded once at startup and read-only after."""

    port: int = 9090
    targets: tuple[str, ...] = DEFAULT_TARGETS
    delay: float = 5.0
    timeout: float = 5.0
    speedtest_interval: float = 300.0
    speedtest_timeout: float = 60.0
    speedtest_command: str = "./speedtest"
    speedtest_enabled: bool = True
    ping_concurrency: int = 4
    shutdown_grace: float = 5.0

    def __post_init__(self):
        """Validate ranges. Raises ConfigError on the first violation."""
        if not 0 <= self.port <= 65535:
            raise ConfigError(f"PORT must be between 0 and 65535, got {self.port}")
        if not self.targets:
            raise ConfigError("TARGETS must name at least one host")
        for name in ("delay", "timeout", "speedtest_interval", "speedtest_timeout"):
            value = getattr(self, name)
            if not value > 0:
                raise ConfigError(f"{name.upper()} must be positive, got {value}")
        if not self.speedtest_command:
            raise ConfigError("SPEEDTEST_COMMAND must not be empty")
        if self.ping_concurrency < 1:
            raise ConfigError(f"PING_CONCURRENCY must be at least 1, got {self.ping_concurrency}")
        if self.shutdown_grace < 0:
            raise ConfigError(f"SHUTDOWN_GRACE must not be negative, got {self.shutdown_grace}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from environment variables.

        Environment Variables:
            PORT: Metrics listener port (default 9090)
            TARGETS: Comma-separated hosts to ping (default 8.8.8.8)
            DELAY: Seconds between ping cycles (default 5)
            TIMEOUT: Per-ping timeout in seconds (default 5)
            SPEEDTEST_INTERVAL: Seconds between speed tests (default 300)
            SPEEDTEST_TIMEOUT: Speed test timeout in seconds (default 60)
            SPEEDTEST_COMMAND: Speed test executable (default ./speedtest)
            SPEEDTEST_ENABLED: Run the speed test loop (default true)
            PING_CONCURRENCY: Pings running at once (default 4)
            SHUTDOWN_GRACE: Seconds granted to open connections on
                shutdown (default 5)

        Raises:
            ConfigError: If any value cannot be parsed or is out of range
        """
        env = os.environ if environ is None else environ

        settings = cls(
            port=_int(env, "PORT", cls.port),
            targets=_targets(env, "TARGETS", cls.targets),
            delay=_float(env, "DELAY", cls.delay),
            timeout=_float(env, "TIMEOUT", cls.timeout),
            speedtest_interval=_float(env, "SPEEDTEST_INTERVAL", cls.speedtest_interval),
            speedtest_timeout=_float(env, "SPEEDTEST_TIMEOUT", cls.speedtest_timeout),
            speedtest_command=env.get("SPEEDTEST_COMMAND", cls.speedtest_command).strip(),
            speedtest_enabled=_bool(env, "SPEEDTEST_ENABLED", cls.speedtest_enabled),
            ping_concurrency=_int(env, "PING_CONCURRENCY", cls.ping_concurrency),
            shutdown_grace=_float(env, "SHUTDOWN_GRACE", cls.shutdown_grace),
        )
        logger.debug("Settings loaded: %s", settings)
        return settings


def _raw(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


def _int(env, name, default: int) -> int:
    value = _raw(env, name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"invalid {name}: {value!r} is not an integer") from None


def _float(env, name, default: float) -> float:
    value = _raw(env, name)
    if value is None:
        return default
    try:
        result = float(value)
    except ValueError:
        raise ConfigError(f"invalid {name}: {value!r} is not a number") from None
    if not math.isfinite(result):
        raise ConfigError(f"invalid {name}: {value!r} is not finite")
    return result


def _bool(env, name, default: bool) -> bool:
    value = _raw(env, name)
    if value is None:
        return default
    if value.lower() in _TRUE_VALUES:
        return True
    if value.lower() in _FALSE_VALUES:
        return False
    raise ConfigError(f"invalid {name}: {value!r} is not a boolean")


def _targets(env, name, default: tuple[str, ...]) -> tuple[str, ...]:
    value = env.get(name)
    if value is None:
        return default
    # Keep first-seen order, drop blanks and repeats
    return tuple(dict.fromkeys(host.strip() for host in value.split(",") if host.strip()))

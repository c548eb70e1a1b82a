import argparse
import enum
import math
import os
import re
from dataclasses import dataclass, replace
from typing import Optional

from aqpoll.common.env import env_bool, env_float, env_int
from aqpoll.ingest.errors import ConfigError

DURATION_RE = re.compile(r"(?:(?:\d+(?:\.\d*)?|\.\d+)(?:ns|us|µs|μs|ms|s|m|h))+")
DURATION_PART_RE = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


class TimestampMode(enum.Enum):
    RFC3339 = "rfc3339"
    UNIX = "unix"


@dataclass(frozen=True)
class PollerConfig:
    port_path: str
    serial_baud: int
    samples: int
    interval_seconds: float
    timestamp_mode: TimestampMode
    listen_address: Optional[str]
    read_timeout: float
    sleep_on_exit: bool
    log_level: str


def parse_duration(value):
    """Parse ``30s``, ``15m``, ``1h20m`` or a bare number of seconds."""
    text = str(value).strip()
    if not text:
        raise ConfigError("empty duration")
    try:
        seconds = float(text)
    except ValueError:
        if not DURATION_RE.fullmatch(text):
            raise ConfigError(f"invalid duration: {value!r}") from None
        seconds = sum(
            float(amount) * UNIT_SECONDS[unit]
            for amount, unit in DURATION_PART_RE.findall(text)
        )
    if not math.isfinite(seconds) or seconds < 0:
        raise ConfigError(f"invalid duration: {value!r}")
    return seconds


def parse_listen_address(value):
    """Split ``host:port`` into (host, port); an empty host binds every interface."""
    text = value.strip()
    host, sep, port = text.rpartition(":")
    if not sep:
        raise ConfigError(f"listen address must be host:port, got {value!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port_num = int(port)
    except ValueError:
        raise ConfigError(f"invalid port in listen address {value!r}") from None
    if not 0 <= port_num <= 65535:
        raise ConfigError(f"port out of range in listen address {value!r}")
    return host or "::", port_num


def env_duration(name, default):
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return parse_duration(raw)
    except ConfigError:
        return default


def load_config():
    return PollerConfig(
        port_path=os.getenv("AQPOLL_PORT_PATH", "/dev/ttyUSB0"),
        serial_baud=env_int("AQPOLL_SERIAL_BAUD", 9600),
        samples=env_int("AQPOLL_SAMPLES", 1),
        interval_seconds=env_duration("AQPOLL_INTERVAL", 0.0),
        timestamp_mode=(
            TimestampMode.UNIX if env_bool("AQPOLL_UNIX") else TimestampMode.RFC3339
        ),
        listen_address=os.getenv("AQPOLL_LISTEN_ADDRESS", "") or None,
        read_timeout=env_float("AQPOLL_READ_TIMEOUT", 5.0),
        sleep_on_exit=env_bool("AQPOLL_SLEEP_ON_EXIT"),
        log_level=os.getenv("AQPOLL_LOG_LEVEL", "INFO").upper(),
    )


def validate_config(config):
    if config.samples < 1:
        raise ConfigError(f"samples must be at least 1, got {config.samples}")
    if not math.isfinite(config.interval_seconds) or config.interval_seconds < 0:
        raise ConfigError(f"interval must not be negative, got {config.interval_seconds}")
    if not config.read_timeout > 0:
        raise ConfigError(f"read timeout must be positive, got {config.read_timeout}")
    if config.listen_address:
        parse_listen_address(config.listen_address)
    return config


def _duration_arg(value):
    try:
        return parse_duration(value)
    except ConfigError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from None


def build_arg_parser(defaults):
    parser = argparse.ArgumentParser(
        description=(
            "Read data from the SDS011 sensor and send it to stdout as CSV. "
            "The columns are: a timestamp, the PM2.5 level, the PM10 level."
        )
    )
    parser.add_argument(
        "--interval",
        type=_duration_arg,
        default=defaults.interval_seconds,
        help="measurement interval (e.g. 30s, 15m, 1h20m); 0 reads continuously",
    )
    parser.add_argument("--port-path", default=defaults.port_path, help="serial port path")
    parser.add_argument("--baud", type=int, default=defaults.serial_baud)
    parser.add_argument(
        "--samples",
        type=int,
        default=defaults.samples,
        help="number of samples per measurement",
    )
    parser.add_argument(
        "--unix",
        action="store_true",
        default=defaults.timestamp_mode is TimestampMode.UNIX,
        help="print timestamps as number of seconds since 1970-01-01 00:00:00 UTC",
    )
    parser.add_argument(
        "--listen-address",
        default=defaults.listen_address or "",
        help="address to serve Prometheus metrics on (e.g. :9100); empty disables it",
    )
    parser.add_argument(
        "--read-timeout",
        type=float,
        default=defaults.read_timeout,
        help="seconds to wait for a valid frame from the sensor",
    )
    parser.add_argument(
        "--sleep-on-exit",
        action="store_true",
        default=defaults.sleep_on_exit,
        help="put the sensor to sleep before closing the port",
    )
    parser.add_argument("--log-level", default=defaults.log_level)
    return parser


def parse_config(argv=None, defaults=None):
    defaults = defaults if defaults is not None else load_config()
    parser = build_arg_parser(defaults)
    args = parser.parse_args(argv)
    config = replace(
        defaults,
        port_path=args.port_path,
        serial_baud=args.baud,
        samples=args.samples,
        interval_seconds=args.interval,
        timestamp_mode=TimestampMode.UNIX if args.unix else TimestampMode.RFC3339,
        listen_address=args.listen_address or None,
        read_timeout=args.read_timeout,
        sleep_on_exit=args.sleep_on_exit,
        log_level=args.log_level.upper(),
    )
    try:
        return validate_config(config)
    except ConfigError as exc:
        parser.error(str(exc))

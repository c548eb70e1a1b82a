import logging
import sys

from aqpoll.ingest.errors import DeviceOpenError
from aqpoll.ingest.formatter import CsvLineWriter
from aqpoll.ingest.metrics import build_metrics_sink
from aqpoll.ingest.scheduler import MeasurementScheduler
from aqpoll.ingest.sds011 import SDS011


logger = logging.getLogger(__name__)


def _open_serial(port, baudrate, timeout):
    import serial

    return serial.Serial(port=port, baudrate=baudrate, timeout=timeout)


def open_device(port_path, baudrate=9600, timeout=5):
    try:
        serial_conn = _open_serial(port=port_path, baudrate=baudrate, timeout=1)
    except (OSError, ValueError) as exc:
        raise DeviceOpenError(f"cannot open serial port {port_path}: {exc}") from exc
    try:
        return SDS011(serial_conn, timeout=timeout)
    except Exception:
        serial_conn.close()
        raise


def build_scheduler(config, sensor, metrics, stream=None):
    return MeasurementScheduler(
        sensor=sensor,
        writer=CsvLineWriter(stream, config.timestamp_mode),
        metrics=metrics,
        samples=config.samples,
        interval_seconds=config.interval_seconds,
    )


def run_poller(config, stream=None, max_cycles=None):
    """Open the sensor and run measurement cycles until interrupted."""
    stream = stream if stream is not None else sys.stdout
    sensor = open_device(config.port_path, config.serial_baud, config.read_timeout)
    metrics = None
    scheduler = None
    try:
        metrics = build_metrics_sink(config.listen_address)
        scheduler = build_scheduler(config, sensor, metrics, stream)
        logger.info(
            "Polling %s: %d sample(s) every %ss",
            config.port_path,
            config.samples,
            config.interval_seconds,
        )
        scheduler.run_forever(max_cycles=max_cycles)
    finally:
        if metrics is not None:
            try:
                metrics.close()
            except Exception:
                logger.exception("Failed to stop metrics server")
        if scheduler is not None and config.sleep_on_exit:
            scheduler.sleep_device()
        sensor.close()


def run_from_config(config):
    try:
        run_poller(config)
    except DeviceOpenError as exc:
        logger.error("%s", exc)
        return 1
    except OSError:
        logger.exception("Sensor poller failed")
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted; shutting down")
    return 0

import logging
import threading

from prometheus_client import CollectorRegistry, start_http_server
from prometheus_client.core import GaugeMetricFamily

from aqpoll.ingest.config import parse_listen_address


logger = logging.getLogger(__name__)


class MetricsSink:
    """Latest (pm25, pm10) pair, written by the scheduler and read by scrapes.

    Both values are published together as one tuple under a lock, so a
    reader never pairs pm25 from one cycle with pm10 from another.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._values = (0.0, 0.0)

    def update(self, measurement):
        values = (float(measurement.pm25), float(measurement.pm10))
        with self._lock:
            self._values = values

    def snapshot(self):
        with self._lock:
            return self._values


class NullMetricsSink:
    """Stand-in used when no listen address is configured."""

    def update(self, measurement):
        return None

    def close(self):
        return None


class SinkCollector:
    def __init__(self, sink):
        self.sink = sink

    def collect(self):
        pm25, pm10 = self.sink.snapshot()
        yield GaugeMetricFamily("pm25", "Data from PM2.5 sensor", value=pm25)
        yield GaugeMetricFamily("pm10", "Data from PM10 sensor", value=pm10)


class PrometheusExporter:
    def __init__(self, sink, listen_address):
        self.sink = sink
        self.listen_address = listen_address
        self.registry = CollectorRegistry()
        self.registry.register(SinkCollector(sink))
        self._server = None
        self._thread = None

    @property
    def port(self):
        return None if self._server is None else self._server.server_port

    def update(self, measurement):
        self.sink.update(measurement)

    def start(self):
        host, port = parse_listen_address(self.listen_address)
        self._server, self._thread = start_http_server(
            port, addr=host, registry=self.registry
        )
        logger.info("Serving metrics on %s:%s", host, self.port)
        return self

    def close(self):
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        self._server = None
        self._thread = None


def build_metrics_sink(listen_address):
    if not listen_address:
        return NullMetricsSink()
    return PrometheusExporter(MetricsSink(), listen_address).start()

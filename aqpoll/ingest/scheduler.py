import enum
import logging
import time
from dataclasses import dataclass

from aqpoll.ingest.aggregator import average_burst
from aqpoll.ingest.errors import SensorError
from aqpoll.ingest.interfaces import MeasurementSink, MeasurementWriter, ParticleSensor


logger = logging.getLogger(__name__)

# Intervals at or below this keep the sensor awake between cycles.
SLEEP_THRESHOLD_SECONDS = 1.0


class PowerState(enum.Enum):
    UNKNOWN = "unknown"
    AWAKE = "awake"
    ASLEEP = "asleep"


@dataclass
class MeasurementScheduler:
    sensor: ParticleSensor
    writer: MeasurementWriter
    metrics: MeasurementSink
    samples: int
    interval_seconds: float
    power_state: PowerState = PowerState.UNKNOWN

    def ensure_awake(self):
        if self.power_state is PowerState.UNKNOWN:
            try:
                awake = self.sensor.is_awake()
            except (SensorError, OSError) as exc:
                logger.warning("Sensor state query failed: %s", exc)
            else:
                self.power_state = PowerState.AWAKE if awake else PowerState.ASLEEP
        if self.power_state is not PowerState.AWAKE:
            self.wake_device()

    def wake_device(self):
        try:
            self.sensor.wake()
        except (SensorError, OSError) as exc:
            logger.warning("Sensor wake failed: %s", exc)
            self.power_state = PowerState.UNKNOWN
        else:
            self.power_state = PowerState.AWAKE

    def sleep_device(self):
        try:
            self.sensor.sleep()
        except (SensorError, OSError) as exc:
            logger.warning("Sensor sleep failed: %s", exc)
            self.power_state = PowerState.UNKNOWN
        else:
            self.power_state = PowerState.ASLEEP

    def collect_burst(self):
        readings = []
        for i in range(1, self.samples + 1):
            try:
                readings.append(self.sensor.read())
            except (SensorError, OSError) as exc:
                logger.warning("Sensor read %d/%d failed: %s", i, self.samples, exc)
        return readings

    def wait_until(self, deadline):
        remaining = deadline - time.time()
        if remaining > 0:
            time.sleep(remaining)

    def run_cycle(self):
        self.ensure_awake()
        started = time.time()
        readings = self.collect_burst()
        measurement = average_burst(readings, self.samples)
        if len(readings) < self.samples:
            logger.debug(
                "Averaged %d of %d readings over the full sample count",
                len(readings),
                self.samples,
            )
        self.writer.emit(measurement)
        self.metrics.update(measurement)

        if self.interval_seconds > SLEEP_THRESHOLD_SECONDS:
            self.sleep_device()
            self.wait_until(started + self.interval_seconds)
            self.wake_device()
        return measurement

    def run_forever(self, max_cycles=None):
        cycles = 0
        while max_cycles is None or cycles < max_cycles:
            self.run_cycle()
            cycles += 1

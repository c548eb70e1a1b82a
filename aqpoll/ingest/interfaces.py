import datetime as dt
from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class Reading:
    pm25: float
    pm10: float
    timestamp: dt.datetime


@dataclass(frozen=True)
class Measurement:
    pm25: float
    pm10: float
    # None when every reading in the burst failed.
    timestamp: Optional[dt.datetime]


class ParticleSensor(Protocol):
    def is_awake(self) -> bool:
        ...

    def wake(self) -> None:
        ...

    def sleep(self) -> None:
        ...

    def read(self) -> Reading:
        ...

    def close(self) -> None:
        ...


class MeasurementSink(Protocol):
    def update(self, measurement: Measurement) -> None:
        ...


class MeasurementWriter(Protocol):
    def emit(self, measurement: Measurement) -> None:
        ...

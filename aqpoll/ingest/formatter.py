import datetime as dt
import math
import sys

from aqpoll.ingest.config import TimestampMode


def format_timestamp(timestamp, mode):
    if timestamp is None:
        return ""
    if timestamp.tzinfo is None:
        timestamp = timestamp.astimezone()
    if mode is TimestampMode.UNIX:
        return str(math.floor(timestamp.timestamp()))
    if timestamp.utcoffset() == dt.timedelta(0):
        return timestamp.strftime("%Y-%m-%dT%H:%M:%SZ")
    return timestamp.replace(microsecond=0).isoformat()


def format_measurement(measurement, mode=TimestampMode.RFC3339):
    ts = format_timestamp(measurement.timestamp, mode)
    return f"{ts},{measurement.pm25:.2f},{measurement.pm10:.2f}\n"


class CsvLineWriter:
    def __init__(self, stream=None, mode=TimestampMode.RFC3339):
        self.stream = stream if stream is not None else sys.stdout
        self.mode = mode

    def emit(self, measurement):
        self.stream.write(format_measurement(measurement, self.mode))
        self.stream.flush()

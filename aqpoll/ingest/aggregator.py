from aqpoll.ingest.interfaces import Measurement


def average_burst(readings, samples):
    """Average a burst of readings over the configured sample count.

    The sums are divided by ``samples`` even when fewer readings arrived, so
    failed reads pull the average toward zero. The timestamp is that of the
    last reading, or None for an empty burst.
    """
    if samples < 1:
        raise ValueError(f"samples must be at least 1, got {samples}")
    pm25 = 0.0
    pm10 = 0.0
    timestamp = None
    for reading in readings:
        pm25 += reading.pm25
        pm10 += reading.pm10
        timestamp = reading.timestamp
    return Measurement(pm25=pm25 / samples, pm10=pm10 / samples, timestamp=timestamp)

class ConfigError(ValueError):
    """Invalid command-line flag or environment value."""


class SensorError(RuntimeError):
    pass


class DeviceOpenError(SensorError):
    """The serial port could not be opened; fatal at startup."""


class ReadingError(SensorError):
    """A single reading was missing or malformed; the burst skips it."""


class PowerCommandError(SensorError):
    """The sensor did not acknowledge a wake, sleep or state query."""

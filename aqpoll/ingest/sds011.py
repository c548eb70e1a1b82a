import datetime as dt
import time

from aqpoll.ingest.errors import PowerCommandError, ReadingError
from aqpoll.ingest.interfaces import Reading

HEAD = 0xAA
TAIL = 0xAB
COMMAND_ID = 0xB4
DATA_ID = 0xC0
REPLY_ID = 0xC5

CMD_SLEEP_WORK = 0x06
MODE_QUERY = 0x00
MODE_SET = 0x01
STATE_SLEEP = 0x00
STATE_WORK = 0x01

ALL_DEVICES = (0xFF, 0xFF)
FRAME_LENGTH = 10


def build_command(command, data=()):
    body = [COMMAND_ID, command] + list(data) + [0x00] * (12 - len(data))
    body += list(ALL_DEVICES)
    checksum = sum(body[1:]) & 0xFF
    return bytes([HEAD] + body + [checksum, TAIL])


class SDS011:
    def __init__(self, serial_conn, timeout=5):
        self.serial = serial_conn
        self.timeout = timeout
        self._pending = bytearray()
        self.drain_buffer()

    def _read_frame(self, wanted_id, deadline):
        """Return the payload of the next valid frame with ``wanted_id``.

        Bytes already read stay in ``self._pending``; a rejected candidate
        only drops its first byte, so a header hidden inside a broken frame
        is still found. Returns None once ``deadline`` passes without one.
        """
        while time.time() < deadline:
            start = self._pending.find(HEAD)
            if start < 0:
                self._pending.clear()
            else:
                del self._pending[:start]

            if len(self._pending) < FRAME_LENGTH:
                self._pending.extend(self.serial.read(FRAME_LENGTH - len(self._pending)))
                continue

            frame = bytes(self._pending[:FRAME_LENGTH])
            payload = frame[2:8]
            if (
                frame[1] not in (DATA_ID, REPLY_ID)
                or frame[-1] != TAIL
                or sum(payload) & 0xFF != frame[8]
            ):
                del self._pending[:1]
                continue

            del self._pending[:FRAME_LENGTH]
            if frame[1] == wanted_id:
                return payload
        return None

    def _send(self, command, data):
        self.serial.write(build_command(command, data))
        deadline = time.time() + self.timeout
        while True:
            payload = self._read_frame(REPLY_ID, deadline)
            if payload is None:
                raise PowerCommandError("SDS011 did not acknowledge command before timeout")
            # Replies to other commands can still be in flight.
            if payload[0] == command:
                return payload

    def is_awake(self):
        payload = self._send(CMD_SLEEP_WORK, [MODE_QUERY])
        return payload[2] == STATE_WORK

    def wake(self):
        payload = self._send(CMD_SLEEP_WORK, [MODE_SET, STATE_WORK])
        if payload[2] != STATE_WORK:
            raise PowerCommandError("SDS011 refused to wake")

    def sleep(self):
        payload = self._send(CMD_SLEEP_WORK, [MODE_SET, STATE_SLEEP])
        if payload[2] != STATE_SLEEP:
            raise PowerCommandError("SDS011 refused to sleep")
        self.drain_buffer()

    def read(self):
        payload = self._read_frame(DATA_ID, time.time() + self.timeout)
        if payload is None:
            raise ReadingError("valid SDS011 frame not found before timeout")
        pm25 = (payload[0] | payload[1] << 8) / 10.0
        pm10 = (payload[2] | payload[3] << 8) / 10.0
        return Reading(pm25=pm25, pm10=pm10, timestamp=dt.datetime.now(dt.timezone.utc))

    def drain_buffer(self):
        self._pending.clear()
        while self.serial.in_waiting > 0:
            self.serial.read(self.serial.in_waiting)

    def close(self):
        self.serial.close()

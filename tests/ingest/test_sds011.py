import unittest

from aqpoll.ingest.errors import PowerCommandError, ReadingError
from aqpoll.ingest.sds011 import SDS011, build_command


class FakeSerial:
    def __init__(self, stream=b""):
        self.stream = bytearray(stream)
        self.writes = []
        self.replies = []
        self.closed = False

    def write(self, data):
        self.writes.append(bytes(data))
        if self.replies:
            self.feed(self.replies.pop(0))

    def read(self, n=1):
        if n <= 0 or not self.stream:
            return b""
        count = min(n, len(self.stream))
        chunk = self.stream[:count]
        del self.stream[:count]
        return bytes(chunk)

    @property
    def in_waiting(self):
        return len(self.stream)

    def close(self):
        self.closed = True

    def feed(self, data):
        self.stream.extend(data)


def build_frame(frame_id, payload):
    return bytes([0xAA, frame_id] + list(payload) + [sum(payload) & 0xFF, 0xAB])


def data_frame(pm25_raw, pm10_raw):
    return build_frame(
        0xC0,
        [pm25_raw & 0xFF, pm25_raw >> 8, pm10_raw & 0xFF, pm10_raw >> 8, 0x12, 0x34],
    )


def state_reply(mode, state):
    return build_frame(0xC5, [0x06, mode, state, 0x00, 0x12, 0x34])


def make_sensor(serial):
    return SDS011(serial, timeout=0.05)


class TestBuildCommand(unittest.TestCase):
    def test_sleep_command_bytes(self):
        self.assertEqual(
            build_command(0x06, [0x01, 0x00]),
            bytes.fromhex("aab4060100" + "00" * 10 + "ffff05ab"),
        )

    def test_work_and_query_commands(self):
        self.assertEqual(
            build_command(0x06, [0x01, 0x01]),
            bytes.fromhex("aab4060101" + "00" * 10 + "ffff06ab"),
        )
        self.assertEqual(
            build_command(0x06, [0x00]),
            bytes.fromhex("aab40600" + "00" * 11 + "ffff04ab"),
        )


class TestSDS011(unittest.TestCase):
    def test_constructor_drains_stale_bytes(self):
        serial = FakeSerial(b"\x01\x02" + data_frame(1, 2))

        make_sensor(serial)

        self.assertEqual(serial.in_waiting, 0)

    def test_read_decodes_data_frame(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        serial.feed(data_frame(123, 1034))

        reading = sds.read()

        self.assertAlmostEqual(reading.pm25, 12.3)
        self.assertAlmostEqual(reading.pm10, 103.4)
        self.assertIsNotNone(reading.timestamp.tzinfo)

    def test_read_skips_garbage_bad_checksum_and_replies(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        corrupt = bytearray(data_frame(999, 999))
        corrupt[8] ^= 0xFF
        serial.feed(b"\x00" + bytes(corrupt) + b"\x00" + state_reply(0, 1) + data_frame(50, 80))

        reading = sds.read()

        self.assertAlmostEqual(reading.pm25, 5.0)
        self.assertAlmostEqual(reading.pm10, 8.0)

    def test_read_recovers_from_stray_header_byte(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        serial.feed(b"\xaa" + data_frame(50, 80))

        reading = sds.read()

        self.assertAlmostEqual(reading.pm25, 5.0)
        self.assertAlmostEqual(reading.pm10, 8.0)

    def test_read_recovers_when_header_value_appears_in_truncated_frame(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        # 170 (0xAA) is a legal PM2.5 byte; the truncated frame ends right after it.
        serial.feed(b"\xaa\xc0\xaa" + data_frame(170, 80))

        reading = sds.read()

        self.assertAlmostEqual(reading.pm25, 17.0)
        self.assertAlmostEqual(reading.pm10, 8.0)

    def test_reply_found_after_stray_header_byte(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        serial.replies = [b"\xaa" + state_reply(1, 1)]

        sds.wake()

        self.assertEqual(serial.writes, [build_command(0x06, [0x01, 0x01])])

    def test_read_raises_on_timeout(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        serial.feed(b"\xaa\xc0\x00")

        with self.assertRaisesRegex(ReadingError, "valid SDS011 frame not found"):
            sds.read()

    def test_is_awake_reports_state_from_reply(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        serial.replies = [data_frame(1, 1) + state_reply(0, 1), state_reply(0, 0)]

        self.assertTrue(sds.is_awake())
        self.assertFalse(sds.is_awake())
        self.assertEqual(serial.writes[0], build_command(0x06, [0x00]))

    def test_wake_and_sleep_send_commands(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        serial.replies = [state_reply(1, 1), state_reply(1, 0)]

        sds.wake()
        sds.sleep()

        self.assertEqual(
            serial.writes,
            [build_command(0x06, [0x01, 0x01]), build_command(0x06, [0x01, 0x00])],
        )

    def test_unacknowledged_command_raises(self):
        serial = FakeSerial()
        sds = make_sensor(serial)

        with self.assertRaisesRegex(PowerCommandError, "did not acknowledge"):
            sds.wake()

    def test_wrong_state_in_reply_raises(self):
        serial = FakeSerial()
        sds = make_sensor(serial)
        serial.replies = [state_reply(1, 0)]

        with self.assertRaisesRegex(PowerCommandError, "refused to wake"):
            sds.wake()

    def test_close_closes_port(self):
        serial = FakeSerial()
        make_sensor(serial).close()

        self.assertTrue(serial.closed)


if __name__ == "__main__":
    unittest.main()

from __future__ import annotations

import errno
import socket
import time

import pytest

from pressurefield import DeviceRegistry
from pressurefield.errors import PacketParseError
from pressurefield.io.devices import RawSample, SensorLink, SimulatedPressureSensor
from pressurefield.io.packets import NO_DATA_MESSAGE, format_pressure_packet, parse_pressure_packet


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.mark.parametrize(
    "payload, expected",
    [
        (b"PRESSURE:512.5", 512.5),
        (b"PRESSURE: 3\n", 3.0),
        (b"PRESSURE:-1e2", -100.0),
    ],
)
def test_parse_pressure_packet_accepts_valid_values(payload, expected) -> None:
    assert parse_pressure_packet(payload) == pytest.approx(expected)


@pytest.mark.parametrize(
    "payload",
    [b"HELLO", b"PRESSURE:", b"PRESSURE:abc", b"PRESSURE:nan", b"PRESSURE:inf", b"\xff\xfe"],
)
def test_parse_pressure_packet_rejects_malformed(payload) -> None:
    with pytest.raises(PacketParseError):
        parse_pressure_packet(payload)


def test_format_pressure_packet_is_parseable() -> None:
    assert format_pressure_packet(12.345678) == b"PRESSURE:12.34568"


def test_handle_datagram_publishes_samples_and_counts_drops() -> None:
    link = SensorLink(clock=lambda: 42.0)
    seen = []
    link.data_event.connect(lambda sample, ts: seen.append((sample, ts)))

    assert link.last_message == NO_DATA_MESSAGE
    assert link.handle_datagram(b"nonsense") is None
    assert link.last_message == "nonsense"

    sample = link.handle_datagram(b"PRESSURE:100.0")

    assert sample == RawSample(raw_pressure=100.0, received_at=42.0)
    assert seen == [(sample, 42.0)]
    assert link.packets_accepted == 1
    assert link.packets_dropped == 1
    assert link.status()["last_message"] == "PRESSURE:100.0"


def test_failing_subscriber_does_not_stop_delivery() -> None:
    link = SensorLink()
    seen = []

    def broken(sample, ts):
        raise RuntimeError("boom")

    link.data_event.connect(broken)
    link.data_event.connect(lambda sample, ts: seen.append(sample.raw_pressure))

    link.handle_datagram(b"PRESSURE:1.0")

    assert seen == [1.0]


def test_sensor_link_receives_over_loopback() -> None:
    link = SensorLink(host="127.0.0.1", port=0, receive_timeout=0.05)
    received = []
    link.data_event.connect(lambda sample, ts: received.append(sample))
    link.open()
    sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        assert link.is_open
        assert link.port != 0
        sender.sendto(b"garbage", ("127.0.0.1", link.port))
        sender.sendto(b"PRESSURE:250.0", ("127.0.0.1", link.port))
        assert _wait_for(lambda: len(received) == 1)
    finally:
        sender.close()
        link.close()

    assert received[0].raw_pressure == pytest.approx(250.0)
    assert link.packets_dropped == 1
    assert not link.is_open
    assert not link.is_active


def test_bind_failure_propagates() -> None:
    blocker = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    blocker.bind(("127.0.0.1", 0))
    port = blocker.getsockname()[1]
    link = SensorLink(host="127.0.0.1", port=port)
    try:
        with pytest.raises(OSError):
            link.open()
        assert not link.is_open
        assert not link.is_active
    finally:
        blocker.close()


def test_close_is_idempotent() -> None:
    link = SensorLink(host="127.0.0.1", port=0, receive_timeout=0.05)
    link.open()
    link.close()
    link.close()
    assert not link.is_open


def test_registry_knows_both_sensor_types() -> None:
    assert DeviceRegistry.get_class("udp_pressure") is SensorLink
    assert DeviceRegistry.get_class("simulated") is SimulatedPressureSensor
    assert DeviceRegistry.get_class("camera") is None


def test_simulated_sensor_publishes_samples() -> None:
    sensor = SimulatedPressureSensor(min_pressure=0.0, max_pressure=10.0, rate=200.0, period=0.5)
    received = []
    sensor.data_event.connect(lambda sample, ts: received.append(sample.raw_pressure))
    sensor.open()
    try:
        assert _wait_for(lambda: len(received) >= 5)
    finally:
        sensor.close()

    assert all(0.0 <= value <= 10.0 for value in received)
    assert sensor.status()["packets_accepted"] >= 5


class FlakySocket:
    """Fails one receive, delivers one packet, then closes the link."""

    def __init__(self, link: SensorLink):
        self.link = link
        self.calls = 0

    def recvfrom(self, size):
        self.calls += 1
        if self.calls == 1:
            raise OSError(errno.ECONNRESET, "Connection reset by peer")
        if self.calls == 2:
            return b"PRESSURE:1", ("127.0.0.1", 9999)
        self.link._closed.set()
        raise socket.timeout()


def test_receive_error_rearms_listener(caplog) -> None:
    link = SensorLink()
    received = []
    link.data_event.connect(lambda sample, ts: received.append(sample.raw_pressure))
    stub = FlakySocket(link)
    link._sock = stub
    link._closed.clear()

    link._run()

    assert link.receive_errors == 1
    assert received == [1.0]
    assert stub.calls == 3
    assert "re-arming" in caplog.text


def test_packets_after_close_are_ignored() -> None:
    link = SensorLink(host="127.0.0.1", port=0, receive_timeout=0.05)
    received = []
    link.data_event.connect(lambda sample, ts: received.append(sample))
    link.open()
    port = link.port
    link.close()

    sender = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        sender.sendto(b"PRESSURE:250.0", ("127.0.0.1", port))
        time.sleep(0.2)
    finally:
        sender.close()

    assert received == []
    assert link.packets_accepted == 0
    assert link.last_message == NO_DATA_MESSAGE

"""Wire format of the inbound sensor telemetry: one ``PRESSURE:<float>`` per datagram."""

from __future__ import annotations

import math

from pressurefield.errors import PacketParseError

PACKET_PREFIX = "PRESSURE:"
NO_DATA_MESSAGE = "No data received"


def parse_pressure_packet(data: bytes) -> float:
    """Return the float carried by a ``PRESSURE:<float>`` datagram."""
    try:
        message = data.decode("ascii").strip()
    except UnicodeDecodeError as exc:
        raise PacketParseError(f"Packet is not ASCII: {data[:32]!r}") from exc
    if not message.startswith(PACKET_PREFIX):
        raise PacketParseError(f"Unexpected packet: {message[:32]!r}")
    try:
        value = float(message[len(PACKET_PREFIX):])
    except ValueError as exc:
        raise PacketParseError(f"Bad pressure value in {message[:32]!r}") from exc
    if not math.isfinite(value):
        raise PacketParseError(f"Non-finite pressure value in {message[:32]!r}")
    return value


def format_pressure_packet(value: float) -> bytes:
    return f"{PACKET_PREFIX}{value:.5f}".encode("ascii")

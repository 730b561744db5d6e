"""Exception types raised across pressurefield."""

from __future__ import annotations

__all__ = ["ConfigurationError", "PacketParseError", "RecordingError"]


class ConfigurationError(ValueError):
    """Session parameters are inconsistent; the experiment must not start."""


class PacketParseError(ValueError):
    """An inbound telemetry datagram could not be decoded as a pressure value."""


class RecordingError(RuntimeError):
    """The measurement log could not be created or appended to."""

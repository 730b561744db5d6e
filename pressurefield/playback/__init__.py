"""Replay utilities for driving a session without the physical sensor."""

from .replay import (
    PressureReplay,
    TracePoint,
    UdpPressureEmitter,
    synthetic_trace,
    write_trace_csv,
)

__all__ = [
    "PressureReplay",
    "TracePoint",
    "UdpPressureEmitter",
    "synthetic_trace",
    "write_trace_csv",
]

"""Linear min/max normalisation of raw sensor pressure."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Optional

PRECISION = 100000.0


def normalize(raw: float, min_pressure: float, max_pressure: float) -> float:
    """Inverse-lerp ``raw`` into [0, 1] and round to 5 decimal places.

    A degenerate range (``min == max``) maps everything to 0.
    """
    if max_pressure == min_pressure:
        value = 0.0
    else:
        value = (raw - min_pressure) / (max_pressure - min_pressure)
    value = min(1.0, max(0.0, value))
    return round(value * PRECISION) / PRECISION


@dataclass(frozen=True)
class PressureReading:
    """Latest sensor value in both raw and normalised form."""

    raw: float
    normalized: float
    received_at: float


class PressureNormalizer:
    """Subscriber that keeps the single current :class:`PressureReading`.

    The sensor thread is the only writer (:meth:`handle_sample`) and the frame
    loop the only reader (:meth:`latest`); the reading is swapped as one
    reference under a lock.
    """

    def __init__(self, min_pressure: float = 0.0, max_pressure: float = 1000.0) -> None:
        self.min_pressure = float(min_pressure)
        self.max_pressure = float(max_pressure)
        self._lock = threading.Lock()
        self._latest: Optional[PressureReading] = None

    def attach(self, device: Any) -> None:
        """Subscribe to a device's ``data_event``."""
        device.data_event.connect(self.handle_sample)

    def detach(self, device: Any) -> None:
        device.data_event.disconnect(self.handle_sample)

    def handle_sample(self, sample: Any, device_ts: Any = None) -> PressureReading:
        reading = PressureReading(
            raw=sample.raw_pressure,
            normalized=normalize(sample.raw_pressure, self.min_pressure, self.max_pressure),
            received_at=sample.received_at,
        )
        with self._lock:
            self._latest = reading
        return reading

    def latest(self) -> Optional[PressureReading]:
        """Return the current reading, or ``None`` before the first sample."""
        with self._lock:
            return self._latest

    @property
    def has_data(self) -> bool:
        return self.latest() is not None

    def normalized_or(self, default: float = 0.0) -> float:
        reading = self.latest()
        return default if reading is None else reading.normalized

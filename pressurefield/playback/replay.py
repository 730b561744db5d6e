from __future__ import annotations

import csv
import math
import socket
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Sequence

import numpy as np

from pressurefield.io.packets import format_pressure_packet
from pressurefield.utils._logger import get_logger

logger = get_logger(__name__)

TRACE_PATTERNS = ("sine", "ramp", "square")


@dataclass(frozen=True)
class TracePoint:
    """A raw pressure value at ``elapsed`` seconds into a recording."""

    elapsed: float
    pressure: float


class PressureReplay:
    """Time-aligned playback of a pressure trace.

    Clients register listeners and drive playback with :meth:`start`,
    :meth:`stop` or :meth:`scrub`. The replay does not know about sockets;
    attach a :class:`UdpPressureEmitter` to feed a live :class:`SensorLink`.
    """

    def __init__(
        self,
        points: Sequence[TracePoint],
        *,
        speed: float = 1.0,
        loop: bool = False,
    ) -> None:
        if not points:
            raise ValueError("Playback requires at least one trace point")
        if speed <= 0:
            raise ValueError("speed must be positive")

        self._points = sorted(points, key=lambda p: p.elapsed)
        if loop and self.duration <= 0:
            raise ValueError("Looping playback needs a trace that spans a non-zero duration")
        self.speed = speed
        self.loop = loop
        # spacing inserted between the last point and the first on each pass
        self._loop_gap = self.duration / (len(self._points) - 1) if len(self._points) > 1 else 0.0

        self._listeners: List[Callable[[TracePoint], None]] = []

        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

        self._position = 0
        self._last_elapsed = self._points[0].elapsed

    @classmethod
    def from_csv(cls, path: str | Path, *, speed: float = 1.0, loop: bool = False) -> "PressureReplay":
        """Create a replay from a CSV with ``elapsed`` and ``pressure`` columns."""
        return cls(list(_iter_trace_csv(path)), speed=speed, loop=loop)

    @property
    def duration(self) -> float:
        return self._points[-1].elapsed - self._points[0].elapsed

    def add_listener(self, callback: Callable[[TracePoint], None]) -> None:
        self._listeners.append(callback)

    def start(self, *, blocking: bool = False) -> None:
        """Begin playback. If ``blocking`` is ``True``, run in current thread."""
        self._stop_event.clear()
        if blocking:
            self._run()
            return

        self._thread = threading.Thread(target=self._run, name="PressureReplay", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        self._wake_event.set()
        if self._thread:
            self._thread.join(timeout=1)

    def set_speed(self, speed: float) -> None:
        if speed <= 0:
            raise ValueError("speed must be positive")

        with self._lock:
            self.speed = speed
            self._wake_event.set()

    def scrub(self, *, elapsed: float | None = None, fraction: float | None = None) -> TracePoint:
        """Jump so the next dispatched point is the first at or after the position."""
        if elapsed is None and fraction is None:
            raise ValueError("Provide either elapsed or fraction for scrub")
        if fraction is not None and not 0 <= fraction <= 1:
            raise ValueError("fraction must be between 0 and 1")

        with self._lock:
            origin = self._points[0].elapsed
            target = origin + (self.duration * fraction if elapsed is None else elapsed)
            idx = int(np.searchsorted([p.elapsed for p in self._points], target, side="left"))
            idx = min(idx, len(self._points) - 1)
            self._position = idx
            self._last_elapsed = self._points[idx - 1].elapsed if idx > 0 else origin
            self._wake_event.set()
            return self._points[idx]

    def _run(self) -> None:
        while not self._stop_event.is_set():
            with self._lock:
                if self._position >= len(self._points):
                    if not self.loop:
                        break
                    self._position = 0
                    self._last_elapsed = self._points[0].elapsed - self._loop_gap

                point = self._points[self._position]
                delay = max(0.0, (point.elapsed - self._last_elapsed) / self.speed)
                self._last_elapsed = point.elapsed
                self._position += 1

            if delay:
                self._wake_event.clear()
                self._wake_event.wait(timeout=delay)
            if self._stop_event.is_set():
                break

            for callback in list(self._listeners):
                callback(point)


class UdpPressureEmitter:
    """Listener that forwards trace points as ``PRESSURE:<value>`` datagrams."""

    def __init__(self, host: str = "127.0.0.1", port: int = 8889) -> None:
        self.address = (host, int(port))
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self.sent = 0

    def __call__(self, point: TracePoint) -> None:
        payload = format_pressure_packet(point.pressure)
        try:
            self._sock.sendto(payload, self.address)
            self.sent += 1
        except OSError as exc:
            logger.warning("Could not send pressure packet to %s:%s: %s", *self.address, exc)

    def close(self) -> None:
        self._sock.close()


def synthetic_trace(
    duration: float,
    rate: float,
    *,
    pattern: str = "sine",
    min_pressure: float = 0.0,
    max_pressure: float = 1000.0,
    period: float = 4.0,
) -> List[TracePoint]:
    """Build a squeeze-and-release trace sampled at ``rate`` Hz."""
    if pattern not in TRACE_PATTERNS:
        raise ValueError(f"pattern must be one of {TRACE_PATTERNS}, got {pattern!r}")
    if duration <= 0 or rate <= 0:
        raise ValueError("duration and rate must be positive")

    t = np.arange(0.0, duration, 1.0 / rate)
    phase = (t % period) / period
    if pattern == "sine":
        level = 0.5 - 0.5 * np.cos(2 * math.pi * phase)
    elif pattern == "ramp":
        level = phase
    else:
        level = (phase < 0.5).astype(float)
    values = min_pressure + level * (max_pressure - min_pressure)
    return [TracePoint(elapsed=float(e), pressure=float(v)) for e, v in zip(t, values)]


def write_trace_csv(points: Iterable[TracePoint], path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(["elapsed", "pressure"])
        for point in points:
            writer.writerow([f"{point.elapsed:.6f}", f"{point.pressure:.5f}"])
    return path


def _iter_trace_csv(path: str | Path) -> Iterable[TracePoint]:
    path = Path(path)
    with path.open(newline="", encoding="utf-8") as handle:
        reader = csv.DictReader(handle)
        first: float | None = None
        for row in reader:
            try:
                elapsed = float(row["elapsed"])
                pressure = float(row["pressure"])
            except (KeyError, TypeError, ValueError):
                logger.debug("Skipping malformed trace row: %s", row)
                continue
            if first is None:
                first = elapsed
            yield TracePoint(elapsed=elapsed - first, pressure=pressure)

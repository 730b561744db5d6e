"""UDP ingestion of ``PRESSURE:<float>`` telemetry from the force sensor bridge."""

from __future__ import annotations

import socket
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pressurefield import DeviceRegistry
from pressurefield.errors import PacketParseError
from pressurefield.io.devices.base import BaseDataProducer
from pressurefield.io.packets import NO_DATA_MESSAGE, parse_pressure_packet


@dataclass(frozen=True)
class RawSample:
    """One pressure value as it arrived from the sensor."""

    raw_pressure: float
    received_at: float


@DeviceRegistry.register("udp_pressure")
class SensorLink(BaseDataProducer):
    """Owns the listening datagram socket and publishes :class:`RawSample` values.

    Subscribers register with ``link.data_event.connect(callback)``; callbacks
    run on the receive thread and receive ``(sample, sample.received_at)``.
    """

    device_type = "udp_pressure"

    def __init__(
        self,
        *,
        host: str = "0.0.0.0",
        port: int = 8889,
        receive_timeout: float = 0.2,
        buffer_size: int = 1024,
        device_id: str = "pressure_sensor",
        clock: Callable[[], float] = time.time,
        **_: Any,
    ) -> None:
        super().__init__(device_id=device_id)
        self.host = host
        self.port = int(port)
        self.receive_timeout = float(receive_timeout)
        self.buffer_size = int(buffer_size)
        self._clock = clock

        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._closed = threading.Event()
        self._closed.set()

        self.last_message = NO_DATA_MESSAGE
        self.packets_accepted = 0
        self.packets_dropped = 0
        self.receive_errors = 0

    def __repr__(self) -> str:
        return f"<SensorLink {self.host}:{self.port} active={self.is_active}>"

    # ------------------------------------------------------------------
    # lifecycle

    def open(self) -> None:
        """Bind the socket and start the receive thread. Bind errors propagate."""
        self.start()

    def close(self) -> None:
        """Close the socket and stop the receive thread."""
        self.stop()

    @property
    def is_open(self) -> bool:
        return not self._closed.is_set()

    def _start(self) -> None:
        if self.is_open:
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        try:
            sock.bind((self.host, self.port))
        except OSError:
            sock.close()
            self.logger.error("Could not bind pressure socket on %s:%s", self.host, self.port)
            raise
        sock.settimeout(self.receive_timeout)
        self.port = sock.getsockname()[1]
        self._sock = sock
        self._closed.clear()
        self._thread = threading.Thread(target=self._run, name="SensorLink", daemon=True)
        self._thread.start()
        self.logger.info("Listening for pressure data on %s:%s", self.host, self.port)

    def _stop(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        if self._sock is not None:
            self._sock.close()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=max(1.0, self.receive_timeout * 5))
        self._thread = None
        self._sock = None
        self.logger.info("Pressure socket closed (%d accepted, %d dropped)", self.packets_accepted, self.packets_dropped)

    # ------------------------------------------------------------------
    # receive loop

    def _run(self) -> None:
        sock = self._sock
        while sock is not None and not self._closed.is_set():
            try:
                data, _ = sock.recvfrom(self.buffer_size)
            except socket.timeout:
                continue
            except OSError as exc:
                if self._closed.is_set():
                    break
                self.receive_errors += 1
                self.logger.warning("Receive failed on port %s (%s); re-arming", self.port, exc)
                self._closed.wait(0.05)
                continue
            if self._closed.is_set():
                break
            self.handle_datagram(data)

    def handle_datagram(self, data: bytes) -> Optional[RawSample]:
        """Parse one datagram and publish it. Malformed packets are dropped."""
        try:
            self.last_message = data.decode("ascii", errors="replace").strip()
            value = parse_pressure_packet(data)
        except PacketParseError as exc:
            self.packets_dropped += 1
            self.logger.debug("Dropped packet: %s", exc)
            return None

        sample = RawSample(raw_pressure=value, received_at=self._clock())
        self.packets_accepted += 1
        self.data_event.emit(sample, sample.received_at)
        return sample

    def status(self) -> dict[str, Any]:
        info = super().status()
        info.update(
            {
                "host": self.host,
                "port": self.port,
                "last_message": self.last_message,
                "packets_accepted": self.packets_accepted,
                "packets_dropped": self.packets_dropped,
                "receive_errors": self.receive_errors,
            }
        )
        return info

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from pressurefield import DeviceRegistry
from pressurefield.io.devices.base import BaseDataProducer
from pressurefield.io.devices.sensor_link import RawSample
from pressurefield.io.packets import NO_DATA_MESSAGE, format_pressure_packet
from pressurefield.playback.replay import PressureReplay, TracePoint, synthetic_trace


@DeviceRegistry.register("simulated")
class SimulatedPressureSensor(BaseDataProducer):
    """Socket-free pressure source that loops a synthetic squeeze trace.

    Publishes the same :class:`RawSample` payloads as :class:`SensorLink` so a
    session can be rehearsed without the sensor bridge running.
    """

    device_type = "simulated"

    def __init__(
        self,
        *,
        min_pressure: float = 0.0,
        max_pressure: float = 1000.0,
        rate: float = 60.0,
        pattern: str = "sine",
        period: float = 4.0,
        device_id: str = "pressure_sensor",
        clock: Callable[[], float] = time.time,
        **_: Any,
    ) -> None:
        super().__init__(device_id=device_id)
        self.rate = float(rate)
        self.pattern = pattern
        self._clock = clock
        trace = synthetic_trace(
            period,
            self.rate,
            pattern=pattern,
            min_pressure=min_pressure,
            max_pressure=max_pressure,
            period=period,
        )
        self._replay: Optional[PressureReplay] = PressureReplay(trace, loop=True)
        self._replay.add_listener(self._publish)
        self.last_message = NO_DATA_MESSAGE
        self.packets_accepted = 0

    def open(self) -> None:
        self.start()

    def close(self) -> None:
        self.stop()

    def _publish(self, point: TracePoint) -> None:
        sample = RawSample(raw_pressure=point.pressure, received_at=self._clock())
        self.last_message = format_pressure_packet(point.pressure).decode("ascii")
        self.packets_accepted += 1
        self.data_event.emit(sample, sample.received_at)

    def _start(self) -> None:
        if self._replay is not None:
            self._replay.start()
            self.logger.info("Simulated %s pressure trace at %.1f Hz", self.pattern, self.rate)

    def _stop(self) -> None:
        if self._replay is not None:
            self._replay.stop()

    def status(self) -> dict[str, Any]:
        info = super().status()
        info.update({"last_message": self.last_message, "packets_accepted": self.packets_accepted})
        return info

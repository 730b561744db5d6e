from pressurefield.io.devices.base import BaseDataProducer
from pressurefield.io.devices.sensor_link import RawSample, SensorLink, parse_pressure_packet
from pressurefield.io.devices.simulated import SimulatedPressureSensor

__all__ = [
    "BaseDataProducer",
    "RawSample",
    "SensorLink",
    "SimulatedPressureSensor",
    "parse_pressure_packet",
]

from __future__ import annotations

from typing import Any, Dict, Optional

from pressurefield import DeviceRegistry
from pressurefield.errors import ConfigurationError
from pressurefield.io.devices import BaseDataProducer
from pressurefield.utils._logger import get_logger
from pressurefield.utils.config import load_hardware_config, normalise_hardware


class HardwareManager():
    """
    Builds the pressure source and holds the telemetry destination described
    by the ``sensor`` / ``telemetry`` blocks of a hardware file or mapping.
    """

    def __init__(self, config_file: Optional[str] = None, *, params: Optional[Dict[str, Any]] = None):
        self.logger = get_logger(f'{__name__}.{self.__class__.__name__}')
        self.config_file = config_file
        self.devices: dict[str, BaseDataProducer] = {}
        self.sensor: Optional[BaseDataProducer] = None

        if config_file:
            self.logger.info(f"Initializing HardwareManager with config: {config_file}")
            try:
                self.yaml = load_hardware_config(config_file)
                self.logger.info("Successfully loaded hardware configuration")
            except Exception as e:
                self.logger.error(f"Failed to load hardware configuration: {e}")
                raise
        else:
            self.yaml = normalise_hardware(params or {})

    def __repr__(self):
        return (
            "<HardwareManager>\n"
            f"  Sensor: {self.sensor!r}\n"
            f"  Devices: {list(self.devices.keys())}\n"
            f"  Config: {self.yaml}\n"
            "</HardwareManager>"
        )

    @property
    def sensor_params(self) -> Dict[str, Any]:
        return self.yaml["sensor"]

    @property
    def telemetry_params(self) -> Dict[str, Any]:
        return self.yaml["telemetry"]

    # ---- Public interface --------------------------------------------------

    def initialize(self) -> None:
        """Instantiate devices from the configuration without opening them."""
        if self.sensor is None:
            self._init_sensor()

    def start(self) -> None:
        """Open every device. A failure here aborts startup."""
        for name, device in self.devices.items():
            self.logger.info(f"Starting {name}")
            device.start()

    def shutdown(self):
        """Shutdown all devices."""
        for name, device in self.devices.items():
            try:
                device.shutdown()
            except Exception as e:
                self.logger.error(f"Error shutting down {name}: {e}")

    # ---- Device init -------------------------------------------------------

    def _init_sensor(self):
        params = dict(self.sensor_params)
        sensor_type = params.pop("type", "udp_pressure")
        SensorClass = DeviceRegistry.get_class(sensor_type)
        if SensorClass is None:
            raise ConfigurationError(
                f"Unknown sensor type '{sensor_type}'. Known types: {DeviceRegistry.types()}"
            )
        self.sensor = SensorClass(**params)
        self.devices[self.sensor.device_id] = self.sensor

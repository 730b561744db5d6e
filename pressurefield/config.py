import os
import datetime
import random
from pathlib import Path, PureWindowsPath
from typing import Dict, Any, List, Optional, Type, Tuple

import pandas as pd

from pressurefield.hardware import HardwareManager
from pressurefield.protocols.controller import ControllerSettings
from pressurefield.protocols.experiment_logic import TargetSpec, build_target_table
from pressurefield.utils._logger import get_logger
from pressurefield.utils.config import (
    EXPERIMENT_SCHEMA,
    apply_schema,
    default_targets,
    load_experiment_config,
    normalise_deformation,
)


# Configuration Registry pattern
class ConfigRegister:
    """A registry that maintains configuration values with optional type validation."""

    def __init__(self):
        self._registry: Dict[str, Any] = {}
        self._types: Dict[str, Optional[Type]] = {}

    def register(self, key: str, default: Any = None, type_hint: Optional[Type] = None) -> None:
        """Register a configuration parameter and its expected type."""
        self._registry[key] = default
        self._types[key] = type_hint

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self._registry.get(key, default)

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value with type validation."""
        # Register the key if it doesn't exist
        if key not in self._registry:
            self.register(key, value)

        type_hint = self._types.get(key)
        if value is not None and type_hint and not isinstance(value, type_hint):
            try:
                # Attempt type conversion
                value = type_hint(value)
            except (ValueError, TypeError):
                raise TypeError(f"Invalid type for {key}. Expected {type_hint.__name__}, got {type(value).__name__}")

        self._registry[key] = value

    def items(self) -> Dict[str, Any]:
        """Get all key-value pairs."""
        return self._registry.copy()


class ExperimentConfig(ConfigRegister):
    """## Session parameters for one compression-matching run.

    #### Example Usage:
    ```python
    config = ExperimentConfig.from_file('path/to/experiment.yaml')
    config.set('subject', '007')

    settings, targets = config.validate()
    log_path = config.make_path('measurements', 'csv', 'beh', create_dir=True)
    ```
    """

    SPECIAL_KEYS = {"Configuration", "Targets", "Deformation", "Hardware"}

    def __init__(self, hardware_config_path: Optional[str] = None):
        super().__init__()
        self.logger = get_logger(__name__)
        if hardware_config_path:
            self.logger.info("Initializing ExperimentConfig with hardware path: %s", hardware_config_path)
        else:
            self.logger.info("Initializing ExperimentConfig with inline hardware defaults")

        self._config_file_path = ''
        self._config_directory = ''
        self._save_dir = ''
        self.target_entries: List[Dict[str, Any]] = default_targets()
        self.deformation: Dict[str, Any] = normalise_deformation(None)
        self.hardware: HardwareManager

        self._register_default_parameters()
        self.logger.debug("Registered default parameters")
        self.save_dir = self.get("experiment_directory")

        if hardware_config_path:
            self._set_hardware_config(hardware_config_path)
        else:
            self.hardware = HardwareManager(params={})

        self.notes: list = []

    @classmethod
    def from_file(cls, config_path: str, overrides: Optional[Dict[str, Any]] = None) -> "ExperimentConfig":
        path = Path(config_path).expanduser().resolve()
        config_data = load_experiment_config(path)
        return cls.from_mapping(config_data, overrides, source_path=path)

    @classmethod
    def from_mapping(
        cls,
        config_data: Dict[str, Any],
        overrides: Optional[Dict[str, Any]] = None,
        *,
        source_path: Optional[Path] = None,
    ) -> "ExperimentConfig":
        instance = cls()
        instance._apply_config_data(config_data, source_path)

        if overrides:
            for key, value in overrides.items():
                instance.set(key, value)

        return instance

    def _set_hardware_config(self, hardware_path: str) -> None:
        resolved = Path(hardware_path).expanduser()
        if not resolved.is_absolute():
            resolved = resolved.resolve()
        resolved_str = str(resolved)

        try:
            self.hardware = HardwareManager(resolved_str)
        except Exception as exc:
            self.logger.error("Failed to initialize hardware from %s: %s", resolved_str, exc)
            raise

        self.set("hardware_config_file", resolved_str)

    def _apply_config_data(self, config_data: Dict[str, Any], source_path: Optional[Path]) -> Dict[str, Any]:
        if source_path:
            self._config_file_path = str(source_path)
            self._config_directory = str(source_path.parent)

        base_dir = source_path.parent if source_path else None
        flattened = {
            str(key): value for key, value in config_data.items() if key not in self.SPECIAL_KEYS
        }
        config_block = config_data.get("Configuration")
        if isinstance(config_block, dict):
            flattened.update(config_block)

        hardware_value = flattened.pop("hardware_config_file", None)
        flattened = apply_schema(flattened, EXPERIMENT_SCHEMA, "experiment")

        experiment_dir = flattened.pop("experiment_directory", None)
        if experiment_dir:
            resolved_exp_path = self._resolve_path(experiment_dir, base_dir)
            self.save_dir = resolved_exp_path
            self.set("experiment_directory", resolved_exp_path)

        hardware_block = config_data.get("Hardware")
        if hardware_value:
            self._set_hardware_config(self._resolve_path(hardware_value, base_dir))
        elif isinstance(hardware_block, dict):
            self.hardware = HardwareManager(params=hardware_block)

        targets = config_data.get("Targets")
        if targets is not None:
            self.target_entries = list(targets) if isinstance(targets, (list, tuple)) else [targets]

        self.deformation = normalise_deformation(config_data.get("Deformation"))

        for key, value in flattened.items():
            self.set(key, value)

        return dict(self.items())

    def _resolve_path(self, value: Any, base_dir: Optional[Path]) -> str:
        """Resolve a user-specified path relative to the config file when needed."""
        if value is None:
            return ""

        path_str = str(value)
        if self._looks_like_windows_absolute(path_str):
            return path_str

        candidate = Path(path_str).expanduser()
        if candidate.is_absolute():
            return str(candidate.resolve(strict=False))

        if base_dir:
            return str((base_dir / candidate).resolve(strict=False))

        return str(candidate.resolve(strict=False))

    @staticmethod
    def _looks_like_windows_absolute(path_str: str) -> bool:
        """Detect Windows-style absolute paths even when running under POSIX."""
        return bool(PureWindowsPath(path_str).drive)

    def _register_default_parameters(self):
        """Register default parameters in the registry from the experiment schema."""
        for key, meta in EXPERIMENT_SCHEMA.items():
            self.register(key, meta.get("default"), meta.get("type"))
        self.register("hardware_config_file", None, str)

    @property
    def save_dir(self) -> str:
        """Get the save directory."""
        return os.path.join(self._save_dir, 'data')

    @save_dir.setter
    def save_dir(self, path: str):
        """Set the save directory."""
        if isinstance(path, str):
            self._save_dir = os.path.abspath(path)
        else:
            self.logger.warning("Invalid save directory path: %s", path)

    @property
    def subject(self) -> str:
        return self.get("subject")

    @property
    def session(self) -> str:
        return self.get("session")

    @property
    def task(self) -> str:
        return self.get("task")

    @property
    def protocol(self) -> str:
        return self.get("protocol")

    @property
    def experimenter(self) -> str:
        return self.get("experimenter")

    @property
    def bids_dir(self) -> str:
        """ Dynamic construct of BIDS directory path """
        bids = os.path.join(
            f"sub-{self.subject}",
            f"ses-{self.session}",
        )
        return os.path.abspath(os.path.join(self.save_dir, bids))

    @property
    def targets(self) -> Tuple[TargetSpec, ...]:
        """Target table, checked against ``target_count``."""
        return build_target_table(self.target_entries, int(self.get("target_count")))

    @property
    def dataframe(self):
        """Convert parameters to a pandas DataFrame."""
        combined_params = self.items()
        data = {'Parameter': list(combined_params.keys()),
                'Value': list(combined_params.values())}
        return pd.DataFrame(data)

    def controller_settings(self) -> ControllerSettings:
        return ControllerSettings.from_config(self)

    def validate(self) -> Tuple[ControllerSettings, Tuple[TargetSpec, ...]]:
        """Check every session invariant. Raises ``ConfigurationError``."""
        settings = self.controller_settings()
        targets = self.targets
        settings.validate(targets)
        return settings, targets

    def make_rng(self) -> random.Random:
        seed = self.get("rng_seed")
        return random.Random(seed)

    # Helper method to generate a unique file path
    def make_path(self, suffix: str, extension: str, bids_type: Optional[str] = None, create_dir: bool = False):
        """ Example:
        ```py
            config.make_path("measurements", "csv", "beh")
        ```
        Output:
            /save_dir/data/sub-001/ses-01/beh/20250110_123456_sub-001_ses-01_task-squeeze_measurements.csv
        """
        file = f"{datetime.datetime.now().strftime('%Y%m%d_%H%M%S')}_sub-{self.subject}_ses-{self.session}_task-{self.task}_{suffix}.{extension}"

        if bids_type is None:
            bids_path = self.bids_dir
        else:
            bids_path = os.path.join(self.bids_dir, bids_type)

        if create_dir:
            os.makedirs(bids_path, exist_ok=True)
        base, ext = os.path.splitext(file)
        counter = 1
        file_path = os.path.join(bids_path, file)
        while os.path.exists(file_path):
            file_path = os.path.join(bids_path, f"{base}_{counter}{ext}")
            counter += 1
        return file_path

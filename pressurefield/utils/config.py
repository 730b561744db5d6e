"""Simplified configuration helpers for pressurefield."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

try:  # Python 3.11+
    import tomllib  # type: ignore
except ImportError:  # pragma: no cover - fallback for older Python
    tomllib = None

from pressurefield.errors import ConfigurationError
from pressurefield.utils._logger import get_logger

logger = get_logger(__name__)

SUPPORTED_FORMATS = {".json", ".yaml", ".yml"}
if tomllib:
    SUPPORTED_FORMATS.add(".toml")

Schema = Dict[str, Dict[str, Any]]


# ---------------------------------------------------------------------------
# Schema definitions
# ---------------------------------------------------------------------------

EXPERIMENT_SCHEMA: Schema = {
    "subject": {"type": str, "default": "sub", "required": True},
    "session": {"type": str, "default": "01", "required": True},
    "task": {"type": str, "default": "squeeze", "required": True},
    "experimenter": {"type": str, "default": "researcher"},
    "protocol": {"type": str, "default": "compression_matching"},
    "experiment_directory": {"type": str, "default": "./data"},
    "total_steps": {"type": int, "default": 140, "min": 1},
    "block_size": {"type": int, "default": 10, "min": 1},
    "target_count": {"type": int, "default": 10, "min": 1},
    "hide_after_step": {"type": int, "default": 10, "min": 1},
    "max_distance": {"type": float, "default": 0.1, "min": 1e-9},
    "ref_axis_position": {"type": float, "default": 3.1},
    "material_constants": {"type": list, "default": [1.0, 2.0], "length": 2, "item_type": float},
    "max_deformations": {"type": list, "default": [0.6, 0.75], "length": 2, "item_type": float},
    "rng_seed": {"type": int, "default": None},
}

FINGER_SCHEMA: Schema = {
    "base": {"type": list, "default": [0.0, 0.0, 0.0], "length": 3, "item_type": float},
    "tip": {"type": list, "default": [0.0, 0.1, 0.0], "length": 3, "item_type": float},
    "rest_near": {"type": list, "default": [0.0, 0.1, 0.0], "length": 3, "item_type": float},
    "rest_far": {"type": list, "default": [0.1, 0.0, 0.0], "length": 3, "item_type": float},
    "rotation_speed": {"type": float, "default": 100.0, "min": 0.0},
    "min_distance": {"type": float, "default": 0.1, "min": 0.0},
    "max_distance": {"type": float, "default": 0.3, "min": 0.0},
}

DEFORMATION_SCHEMA: Schema = {
    "max_deformation": {"type": float, "default": 0.6, "min": 0.0, "max": 1.0},
    "expansion_factor": {"type": float, "default": 0.96, "min": 0.0},
    "smooth_speed": {"type": float, "default": 40.0, "min": 1e-6},
    "smooth_time": {"type": float, "default": None, "min": 1e-4},
    "initial_scale": {"type": list, "default": [1.0, 1.0, 1.0], "length": 3, "item_type": float},
    "initial_position": {"type": list, "default": [0.0, 0.0, 0.0], "length": 3, "item_type": float},
    "compression_axis": {"type": list, "default": [1.0, 0.0, 0.0], "length": 3, "item_type": float},
}

SENSOR_SCHEMA: Schema = {
    "type": {"type": str, "default": "udp_pressure"},
    "host": {"type": str, "default": "0.0.0.0"},
    "port": {"type": int, "default": 8889, "min": 0, "max": 65535},
    "min_pressure": {"type": float, "default": 0.0},
    "max_pressure": {"type": float, "default": 1000.0},
    "receive_timeout": {"type": float, "default": 0.2, "min": 0.01},
    "buffer_size": {"type": int, "default": 1024, "min": 16},
}

TELEMETRY_SCHEMA: Schema = {
    "host": {"type": str, "default": "127.0.0.1"},
    "port": {"type": int, "default": 8893, "min": 0, "max": 65535},
    "enabled": {"type": bool, "default": True},
}

# Compressions the subject is asked to reproduce, one per target id.
DEFAULT_TARGET_COMPRESSIONS = [
    0.68794, 0.66001, 0.62448, 0.57949, 0.54304,
    0.49568, 0.45790, 0.42509, 0.39034, 0.34864,
]

SCHEMAS = {
    "experiment": EXPERIMENT_SCHEMA,
    "deformation": DEFORMATION_SCHEMA,
    "finger": FINGER_SCHEMA,
    "sensor": SENSOR_SCHEMA,
    "telemetry": TELEMETRY_SCHEMA,
}


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a configuration file, inferring the format from its extension."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        return json.loads(path.read_text(encoding="utf-8"))
    if suffix in {".yaml", ".yml"}:
        return yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if suffix == ".toml" and tomllib:
        with path.open("rb") as handle:
            return tomllib.load(handle)

    raise ValueError(f"Unsupported config format: {suffix}. Supported: {sorted(SUPPORTED_FORMATS)}")


def save_config_file(config: Dict[str, Any], path: Union[str, Path], format_override: Optional[str] = None) -> None:
    """Persist a configuration dictionary to disk."""
    path = Path(path)
    suffix = (format_override or path.suffix or ".yaml").lower()
    path.parent.mkdir(parents=True, exist_ok=True)

    if suffix == ".json":
        path.write_text(json.dumps(config, indent=2), encoding="utf-8")
        return
    if suffix in {".yaml", ".yml"}:
        with path.open("w", encoding="utf-8") as handle:
            yaml.safe_dump(config, handle, default_flow_style=False, indent=2, sort_keys=False)
        return
    raise ValueError(f"Unsupported save format: {suffix}")


# ---------------------------------------------------------------------------
# Schema utilities
# ---------------------------------------------------------------------------


def _coerce_value(value: Any, expected_type: type) -> Any:
    if expected_type is bool:
        if isinstance(value, bool):
            return value
        if isinstance(value, str):
            lowered = value.strip().lower()
            if lowered in {"1", "true", "yes", "on"}:
                return True
            if lowered in {"0", "false", "no", "off"}:
                return False
        return bool(value)
    if expected_type is list:
        if isinstance(value, (list, tuple)):
            return list(value)
        raise ConfigurationError(f"Expected a list, got {value!r}")
    try:
        return expected_type(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Expected {expected_type.__name__}, got {value!r}") from exc


def _coerce_items(key: str, value: List[Any], meta: Dict[str, Any]) -> List[Any]:
    length = meta.get("length")
    if length is not None and len(value) != length:
        raise ConfigurationError(f"Parameter '{key}' must have {length} entries, got {len(value)}")
    item_type = meta.get("item_type")
    if item_type is None:
        return value
    return [_coerce_value(item, item_type) for item in value]


def apply_schema(raw: Optional[Dict[str, Any]], schema: Schema, name: str) -> Dict[str, Any]:
    """Fill defaults, coerce types and range-check ``raw`` against ``schema``."""
    raw = dict(raw or {})
    normalised: Dict[str, Any] = {}

    for key, meta in schema.items():
        expected = meta.get("type", str)
        default = meta.get("default")
        required = meta.get("required", False)
        value = raw.get(key, default)

        if value is None:
            if required and default is None:
                raise ConfigurationError(f"Missing required parameter '{key}' in {name} config")
            normalised[key] = value
            continue

        value = _coerce_value(value, expected)
        if expected is list:
            value = _coerce_items(key, value, meta)

        min_val = meta.get("min")
        max_val = meta.get("max")
        if min_val is not None and value < min_val:
            raise ConfigurationError(f"Parameter '{key}' must be >= {min_val}, got {value}")
        if max_val is not None and value > max_val:
            raise ConfigurationError(f"Parameter '{key}' must be <= {max_val}, got {value}")

        choices = meta.get("choices")
        if choices and value not in choices:
            raise ConfigurationError(f"Parameter '{key}' must be one of {choices}, got {value}")

        normalised[key] = value

    for key, value in raw.items():
        if key not in normalised:
            logger.debug("Unrecognised %s config parameter '%s'", name, key)
            normalised[key] = value

    return normalised


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def default_targets(
    compressions: Optional[List[float]] = None,
    *,
    initial_scale_x: float = 1.0,
    initial_position_x: float = 0.0,
) -> List[Dict[str, Any]]:
    """Target table whose x positions sit where the compressing face lands at each compression."""
    anchor_x = initial_position_x - initial_scale_x * 0.5
    values = DEFAULT_TARGET_COMPRESSIONS if compressions is None else compressions
    return [
        {"position": [round(anchor_x + initial_scale_x * value, 5), 0.0, 0.0], "target_compression": value}
        for value in values
    ]


def load_experiment_config(path: Union[str, Path]) -> Dict[str, Any]:
    """Load experiment configuration without imposing the block structure.

    ExperimentConfig is responsible for interpreting the returned mapping.  Here
    we only ensure that the file exists and contains a dictionary so that all
    structural decisions happen in one place.
    """
    raw = load_config_file(path)
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Experiment configuration must be a mapping, got {type(raw).__name__}")
    return dict(raw)


def load_hardware_config(path: Union[str, Path]) -> Dict[str, Dict[str, Any]]:
    """Load the ``sensor`` and ``telemetry`` blocks of a hardware file."""
    raw = load_config_file(path)
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Hardware configuration must be a mapping, got {type(raw).__name__}")
    return normalise_hardware(raw)


def normalise_hardware(raw: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    return {
        "sensor": apply_schema(raw.get("sensor"), SENSOR_SCHEMA, "sensor"),
        "telemetry": apply_schema(raw.get("telemetry"), TELEMETRY_SCHEMA, "telemetry"),
    }


def normalise_deformation(raw: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    raw = dict(raw or {})
    fingers_raw = raw.pop("fingers", None) or {}
    block = apply_schema(raw, DEFORMATION_SCHEMA, "deformation")
    block["fingers"] = {
        name: apply_schema(fingers_raw.get(name), FINGER_SCHEMA, f"finger '{name}'")
        for name in ("index", "thumb")
    }
    return block


def validate_config_file(path: Union[str, Path]) -> bool:
    """Validate an experiment configuration file and return True on success."""
    from pressurefield.config import ExperimentConfig

    try:
        ExperimentConfig.from_file(str(path)).validate()
        return True
    except Exception as exc:
        logger.error("Validation failed for %s: %s", path, exc)
        return False


def create_config_template(output_path: Union[str, Path]) -> Dict[str, Any]:
    """Write a template file containing every default block."""
    template: Dict[str, Any] = {
        "Configuration": {key: meta.get("default") for key, meta in EXPERIMENT_SCHEMA.items()},
        "Targets": default_targets(),
        "Deformation": {key: meta.get("default") for key, meta in DEFORMATION_SCHEMA.items()},
        "Hardware": {
            "sensor": {key: meta.get("default") for key, meta in SENSOR_SCHEMA.items()},
            "telemetry": {key: meta.get("default") for key, meta in TELEMETRY_SCHEMA.items()},
        },
    }
    template["Deformation"]["fingers"] = {
        "index": {key: meta.get("default") for key, meta in FINGER_SCHEMA.items()},
        "thumb": {key: meta.get("default") for key, meta in FINGER_SCHEMA.items()},
    }
    save_config_file(template, output_path)
    logger.info("Generated experiment template: %s", output_path)
    return template

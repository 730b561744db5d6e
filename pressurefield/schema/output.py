"""Schema helpers for pressurefield output artifacts.

This module fixes the column order of the per-trial measurement log (also
used for the UDP telemetry rows) and builds the JSON session summary written
next to the log at shutdown.

Usage
-----
>>> from pressurefield.schema.output import MEASUREMENT_FIELDS, format_row
>>> header = ",".join(MEASUREMENT_FIELDS)
>>> row = format_row(measurement)

The current summary schema is version ``1.0``.
"""

from __future__ import annotations

import math
from dataclasses import astuple, dataclass, fields
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Sequence, TYPE_CHECKING

import pandas as pd

SUMMARY_SCHEMA_VERSION = "1.0"
SUMMARY_SCHEMA_ID = f"pressurefield.session/{SUMMARY_SCHEMA_VERSION}"

if TYPE_CHECKING:  # pragma: no cover
    from pressurefield.config import ExperimentConfig


@dataclass(frozen=True)
class Measurement:
    """One recorded trial. Field order is the log column order."""

    step: int
    raw_pressure: float
    wall_time: float
    step_elapsed: float
    lateral_distance: float
    accuracy_pct: float
    cube_point_x: float
    cube_point_y: float
    cube_point_z: float
    target_point_x: float
    target_point_y: float
    target_point_z: float
    material_constant: float
    target_distance: float
    actual_scale_x: float
    target_compression: float
    compression_error: float
    non_visual_elapsed: float

    def as_dict(self) -> Dict[str, Any]:
        return dict(zip(MEASUREMENT_FIELDS, astuple(self)))


MEASUREMENT_FIELDS: tuple[str, ...] = tuple(f.name for f in fields(Measurement))

FIELD_FORMATS: Dict[str, str] = {
    "step_elapsed": "{:.4f}",
    "lateral_distance": "{:.4f}",
    "accuracy_pct": "{:.2f}",
    "target_distance": "{:.4f}",
    "target_compression": "{:.5f}",
    "compression_error": "{:.5f}",
    "non_visual_elapsed": "{:.4f}",
}


def header_line() -> str:
    return ",".join(MEASUREMENT_FIELDS)


def format_value(name: str, value: Any) -> str:
    if isinstance(value, float) and math.isnan(value):
        return "nan"
    fmt = FIELD_FORMATS.get(name)
    if fmt is not None:
        return fmt.format(value)
    return str(value)


def format_row(measurement: Measurement) -> str:
    """Comma-separated row without the trailing newline."""
    return ",".join(format_value(name, value) for name, value in measurement.as_dict().items())


def load_measurements(path: str | Path) -> pd.DataFrame:
    """Read a measurement log back into a DataFrame."""
    return pd.read_csv(path)


# ---------------------------------------------------------------------------
# Session summary


def build_session_summary(cfg: "ExperimentConfig", measurements: pd.DataFrame) -> Dict[str, Any]:
    """Build a JSON-serializable dictionary describing the finished session."""
    created = datetime.now().astimezone().isoformat()
    return {
        "schema": SUMMARY_SCHEMA_ID,
        "created": created,
        "recording": _recording_header(cfg),
        "summary": _measurement_summary(measurements),
    }


def _recording_header(cfg: "ExperimentConfig") -> Dict[str, Any]:
    header = {
        "subject": cfg.subject,
        "session": cfg.session,
        "task": cfg.task,
        "experimenter": cfg.get("experimenter", ""),
        "protocol": cfg.get("protocol", ""),
        "total_steps": cfg.get("total_steps"),
        "block_size": cfg.get("block_size"),
        "hide_after_step": cfg.get("hide_after_step"),
        "rng_seed": cfg.get("rng_seed"),
        "notes": list(getattr(cfg, "notes", [])),
        "config_file": getattr(cfg, "_config_file_path", ""),
    }
    return {key: _json_safe_value(value) for key, value in header.items()}


def _measurement_summary(frame: pd.DataFrame) -> Dict[str, Any]:
    if frame.empty:
        return {"total_trials": 0, "by_material_constant": {}}

    grouped = frame.groupby("material_constant").agg(
        trials=("step", "count"),
        mean_accuracy_pct=("accuracy_pct", "mean"),
        mean_compression_error=("compression_error", "mean"),
    )
    by_condition = {
        str(key): {name: _json_safe_value(value) for name, value in row.items()}
        for key, row in grouped.to_dict(orient="index").items()
    }
    visual = frame[frame["non_visual_elapsed"] == 0]
    non_visual = frame[frame["non_visual_elapsed"] > 0]
    return {
        "total_trials": int(len(frame)),
        "last_step": int(frame["step"].max()),
        "mean_accuracy_pct": _json_safe_value(frame["accuracy_pct"].mean()),
        "mean_compression_error": _json_safe_value(frame["compression_error"].mean()),
        "visual_trials": int(len(visual)),
        "non_visual_trials": int(len(non_visual)),
        "by_material_constant": by_condition,
    }


def _json_safe_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): _json_safe_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe_value(v) for v in value]
    if hasattr(value, "item"):
        try:
            return _json_safe_value(value.item())
        except Exception:  # pragma: no cover - best effort
            pass
    return repr(value)


def rows_to_frame(rows: Sequence[Measurement]) -> pd.DataFrame:
    return pd.DataFrame([m.as_dict() for m in rows], columns=list(MEASUREMENT_FIELDS))


__all__ = [
    "MEASUREMENT_FIELDS",
    "Measurement",
    "build_session_summary",
    "format_row",
    "header_line",
    "load_measurements",
    "rows_to_frame",
]

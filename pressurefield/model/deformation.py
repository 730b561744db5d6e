"""Pressure-driven squash of the held object.

The object compresses along ``compression_axis`` and bulges on the two other
axes. The face opposite the compressing finger (the anchor) stays put, so the
object's centre slides toward the anchor as it shortens.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Dict, Optional, Sequence, Tuple

import numpy as np

from pressurefield.model import quaternion as quat
from pressurefield.model.fingers import FingerModel, FingerPose

Vector = Tuple[float, float, float]

MIN_MAX_DEFORMATION = 0.1
MAX_MAX_DEFORMATION = 0.9


@dataclass(frozen=True)
class Pose:
    position: Vector
    scale: Vector
    orientation: Tuple[float, float, float, float]


@dataclass(frozen=True)
class FramePose:
    """Everything the presentation layer needs to draw one frame."""

    object: Pose
    pressure: float
    compression: float
    contact_point: Vector
    fingers: Dict[str, FingerPose] = field(default_factory=dict)


def smooth_damp(
    current: float,
    target: float,
    velocity: float,
    smooth_time: float,
    dt: float,
    max_speed: float = math.inf,
) -> Tuple[float, float]:
    """Critically damped approach of ``current`` to ``target``.

    Returns ``(value, velocity)``. The result never passes ``target``.
    """
    smooth_time = max(0.0001, smooth_time)
    omega = 2.0 / smooth_time
    x = omega * dt
    decay = 1.0 / (1.0 + x + 0.48 * x * x + 0.235 * x * x * x)

    original_target = target
    max_change = max_speed * smooth_time
    change = min(max_change, max(-max_change, current - target))
    target = current - change

    temp = (velocity + omega * change) * dt
    velocity = (velocity - omega * temp) * decay
    value = target + (change + temp) * decay

    if (original_target - current > 0.0) == (value > original_target):
        value = original_target
        velocity = (value - original_target) / dt
    return value, velocity


def lerp(a: np.ndarray, b: np.ndarray, t: float) -> np.ndarray:
    t = min(1.0, max(0.0, t))
    return a + (b - a) * t


class DeformationModel:
    """Per-frame control model turning normalised pressure into object and finger poses."""

    def __init__(
        self,
        *,
        max_deformation: float = 0.6,
        expansion_factor: float = 0.96,
        smooth_speed: float = 40.0,
        smooth_time: Optional[float] = None,
        initial_scale: Sequence[float] = (1.0, 1.0, 1.0),
        initial_position: Sequence[float] = (0.0, 0.0, 0.0),
        compression_axis: Sequence[float] = (1.0, 0.0, 0.0),
        fingers: Optional[Dict[str, FingerModel]] = None,
    ) -> None:
        axis = np.asarray(compression_axis, dtype=float)
        norm = float(np.linalg.norm(axis))
        if norm == 0.0:
            raise ValueError("compression_axis must be non-zero")

        self.max_deformation = float(max_deformation)
        self.expansion_factor = float(expansion_factor)
        self.smooth_speed = float(smooth_speed)
        self.smooth_time = float(smooth_time) if smooth_time else 1.0 / self.smooth_speed
        self.axis = axis / norm
        self.orientation = quat.from_to_rotation(np.array([1.0, 0.0, 0.0]), self.axis)

        self.initial_scale = np.asarray(initial_scale, dtype=float)
        self.initial_position = np.asarray(initial_position, dtype=float)
        self.anchor_point = self.initial_position - self.axis * (self.initial_scale[0] * 0.5)
        self.fingers: Dict[str, FingerModel] = dict(fingers or {})
        self.reset()

    @classmethod
    def from_config(cls, block: dict) -> "DeformationModel":
        fingers = {
            name: FingerModel.from_config(name, finger)
            for name, finger in (block.get("fingers") or {}).items()
        }
        return cls(
            max_deformation=block.get("max_deformation", 0.6),
            expansion_factor=block.get("expansion_factor", 0.96),
            smooth_speed=block.get("smooth_speed", 40.0),
            smooth_time=block.get("smooth_time"),
            initial_scale=block.get("initial_scale", (1.0, 1.0, 1.0)),
            initial_position=block.get("initial_position", (0.0, 0.0, 0.0)),
            compression_axis=block.get("compression_axis", (1.0, 0.0, 0.0)),
            fingers=fingers,
        )

    def reset(self) -> None:
        self.current_pressure = 0.0
        self._pressure_velocity = 0.0
        self.current_scale = self.initial_scale.copy()
        self.position = self.initial_position.copy()
        for finger in self.fingers.values():
            finger.reset()

    # ------------------------------------------------------------------

    def target_scale(self, pressure: float) -> np.ndarray:
        squash = 1.0 - pressure * self.max_deformation
        bulge = 1.0 + pressure * self.max_deformation * self.expansion_factor
        return self.initial_scale * np.array([squash, bulge, bulge])

    def update(self, dt: float, target_pressure: float) -> FramePose:
        """Advance the model by ``dt`` seconds toward ``target_pressure``."""
        if dt <= 0.0:
            return self.pose()

        self.current_pressure, self._pressure_velocity = smooth_damp(
            self.current_pressure, target_pressure, self._pressure_velocity, self.smooth_time, dt
        )

        t = dt * self.smooth_speed
        self.current_scale = lerp(self.current_scale, self.target_scale(self.current_pressure), t)

        goal = self.anchor_point + self.axis * (self.current_scale[0] * 0.5)
        self.position = lerp(self.position, goal, t)

        for finger in self.fingers.values():
            finger.update(dt, target_pressure)
        return self.pose()

    # ------------------------------------------------------------------

    def get_compression_amount(self) -> float:
        return float(1.0 - self.current_scale[0] / self.initial_scale[0])

    def contact_point(self) -> np.ndarray:
        """Centre of the face pressed by the index finger."""
        return self.position + self.axis * (self.current_scale[0] * 0.5)

    def set_max_deformation(self, value: float) -> float:
        """Clamp into [0.1, 0.9]; used from the next :meth:`update` on."""
        self.max_deformation = min(MAX_MAX_DEFORMATION, max(MIN_MAX_DEFORMATION, float(value)))
        return self.max_deformation

    def get_max_deformation(self) -> float:
        return self.max_deformation

    def pose(self) -> FramePose:
        return FramePose(
            object=Pose(
                position=_vec(self.position),
                scale=_vec(self.current_scale),
                orientation=tuple(float(v) for v in self.orientation),  # type: ignore[arg-type]
            ),
            pressure=float(self.current_pressure),
            compression=self.get_compression_amount(),
            contact_point=_vec(self.contact_point()),
            fingers={name: finger.pose() for name, finger in self.fingers.items()},
        )


def _vec(values: np.ndarray) -> Vector:
    return (float(values[0]), float(values[1]), float(values[2]))

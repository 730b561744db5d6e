from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np

from pressurefield.model import quaternion as quat

Vector = Tuple[float, float, float]


@dataclass(frozen=True)
class FingerPose:
    orientation: Tuple[float, float, float, float]
    tip: Vector


class FingerModel:
    """One finger proxy rotating about its base joint.

    While pressure is applied the base turns so the tip points at the point
    interpolated between ``rest_near`` and ``rest_far`` by the pressure; at
    zero pressure it turns back to its rest orientation. Either way it turns
    by at most ``rotation_speed`` degrees per second.
    """

    def __init__(
        self,
        name: str,
        *,
        base: Sequence[float],
        tip: Sequence[float],
        rest_near: Sequence[float],
        rest_far: Sequence[float],
        rotation_speed: float = 100.0,
        min_distance: float = 0.1,
        max_distance: float = 0.3,
        rest_orientation: Optional[Sequence[float]] = None,
    ) -> None:
        self.name = name
        self.base = np.asarray(base, dtype=float)
        self.rest_near = np.asarray(rest_near, dtype=float)
        self.rest_far = np.asarray(rest_far, dtype=float)
        self.rotation_speed = float(rotation_speed)
        self.min_distance = float(min_distance)
        self.max_distance = float(max_distance)
        self.rest_orientation = quat.normalized(
            np.asarray(rest_orientation, dtype=float) if rest_orientation is not None else quat.identity()
        )
        self.orientation = self.rest_orientation.copy()
        offset = np.asarray(tip, dtype=float) - self.base
        self._tip_local = quat.rotate_vector(quat.conjugate(self.rest_orientation), offset)
        self.finger_distance = self.min_distance

    @classmethod
    def from_config(cls, name: str, block: dict) -> "FingerModel":
        return cls(
            name,
            base=block["base"],
            tip=block["tip"],
            rest_near=block["rest_near"],
            rest_far=block["rest_far"],
            rotation_speed=block.get("rotation_speed", 100.0),
            min_distance=block.get("min_distance", 0.1),
            max_distance=block.get("max_distance", 0.3),
        )

    @property
    def tip(self) -> np.ndarray:
        return self.base + quat.rotate_vector(self.orientation, self._tip_local)

    def target_point(self, pressure: float) -> np.ndarray:
        t = min(1.0, max(0.0, pressure))
        return self.rest_near + (self.rest_far - self.rest_near) * t

    def update(self, dt: float, pressure: float) -> None:
        max_step = self.rotation_speed * dt
        if pressure > 0:
            aim = quat.from_to_rotation(self.tip - self.base, self.target_point(pressure) - self.base)
            goal = quat.multiply(aim, self.orientation)
            self.orientation = quat.rotate_towards(self.orientation, goal, max_step)
        else:
            self.orientation = quat.rotate_towards(self.orientation, self.rest_orientation, max_step)

    def update_finger_distance(self, distance: float) -> float:
        self.finger_distance = min(self.max_distance, max(self.min_distance, distance))
        return self.finger_distance

    def reset(self) -> None:
        self.orientation = self.rest_orientation.copy()

    def pose(self) -> FingerPose:
        return FingerPose(
            orientation=tuple(float(v) for v in self.orientation),  # type: ignore[arg-type]
            tip=tuple(float(v) for v in self.tip),  # type: ignore[arg-type]
        )

from __future__ import annotations

import numpy as np
import pytest

from pressurefield.model import DeformationModel, FingerModel, smooth_damp
from pressurefield.model import quaternion as quat
from pressurefield.utils.config import normalise_deformation

DT = 1.0 / 60.0


def _run(model: DeformationModel, pressure: float, frames: int = 300):
    pose = None
    for _ in range(frames):
        pose = model.update(DT, pressure)
    return pose


def test_smooth_damp_approaches_target_without_overshoot() -> None:
    value, velocity = 0.0, 0.0
    history = []
    for _ in range(120):
        value, velocity = smooth_damp(value, 1.0, velocity, 0.025, DT)
        history.append(value)

    assert all(b >= a - 1e-12 for a, b in zip(history, history[1:]))
    assert max(history) <= 1.0
    assert history[-1] == pytest.approx(1.0, abs=1e-4)


def test_full_pressure_squashes_and_bulges() -> None:
    model = DeformationModel(max_deformation=0.6, expansion_factor=0.96)

    pose = _run(model, 1.0)

    assert pose.object.scale[0] == pytest.approx(0.4, abs=1e-3)
    assert pose.object.scale[1] == pytest.approx(1.0 + 0.6 * 0.96, abs=1e-3)
    assert pose.object.scale[2] == pytest.approx(pose.object.scale[1])
    assert pose.compression == pytest.approx(0.6, abs=1e-3)
    # the anchored face stays at x = -0.5, so the pressed face ends at -0.5 + 0.4
    assert pose.contact_point[0] == pytest.approx(-0.1, abs=1e-3)


def test_release_returns_to_rest() -> None:
    model = DeformationModel()
    _run(model, 1.0)
    pose = _run(model, 0.0)

    assert pose.object.scale == pytest.approx((1.0, 1.0, 1.0), abs=1e-3)
    assert pose.object.position == pytest.approx((0.0, 0.0, 0.0), abs=1e-3)


def test_non_positive_dt_leaves_state_untouched() -> None:
    model = DeformationModel()
    before = model.pose()

    assert model.update(0.0, 1.0) == before
    assert model.update(-0.1, 1.0) == before


def test_set_max_deformation_clamps() -> None:
    model = DeformationModel()

    assert model.set_max_deformation(0.95) == 0.9
    assert model.set_max_deformation(0.0) == 0.1
    assert model.set_max_deformation(0.75) == 0.75
    assert model.get_max_deformation() == 0.75


def test_new_max_deformation_applies_on_next_update() -> None:
    model = DeformationModel(max_deformation=0.6)
    _run(model, 1.0)
    model.set_max_deformation(0.75)
    pose = _run(model, 1.0)

    assert pose.object.scale[0] == pytest.approx(0.25, abs=1e-3)


def test_compression_axis_orients_object() -> None:
    model = DeformationModel(compression_axis=(0.0, 0.0, 2.0))

    assert model.axis == pytest.approx([0.0, 0.0, 1.0])
    pose = _run(model, 1.0)
    assert pose.contact_point[2] == pytest.approx(-0.1, abs=1e-3)
    rotated = quat.rotate_vector(np.asarray(pose.object.orientation), np.array([1.0, 0.0, 0.0]))
    assert rotated == pytest.approx([0.0, 0.0, 1.0], abs=1e-9)


def test_zero_axis_is_rejected() -> None:
    with pytest.raises(ValueError):
        DeformationModel(compression_axis=(0.0, 0.0, 0.0))


def test_from_config_builds_index_and_thumb() -> None:
    model = DeformationModel.from_config(normalise_deformation({"max_deformation": 0.5}))

    assert model.max_deformation == 0.5
    assert model.smooth_time == pytest.approx(1.0 / 40.0)
    assert set(model.pose().fingers) == {"index", "thumb"}


def _finger(**kwargs) -> FingerModel:
    params = dict(base=(0.0, 0.0, 0.0), tip=(0.0, 1.0, 0.0), rest_near=(0.0, 1.0, 0.0), rest_far=(1.0, 0.0, 0.0))
    params.update(kwargs)
    return FingerModel("index", **params)


def test_finger_rotation_is_rate_limited() -> None:
    finger = _finger(rotation_speed=100.0)

    finger.update(0.1, 1.0)

    assert quat.angle_between(finger.orientation, finger.rest_orientation) == pytest.approx(10.0, abs=1e-4)


def test_finger_turns_toward_target_then_returns_to_rest() -> None:
    finger = _finger(rotation_speed=100.0)

    for _ in range(20):
        finger.update(0.1, 1.0)
    assert finger.tip == pytest.approx([1.0, 0.0, 0.0], abs=1e-4)

    for _ in range(20):
        finger.update(0.1, 0.0)
    assert finger.tip == pytest.approx([0.0, 1.0, 0.0], abs=1e-4)


def test_finger_target_point_interpolates_rest_points() -> None:
    finger = _finger()

    assert finger.target_point(0.5) == pytest.approx([0.5, 0.5, 0.0])
    assert finger.target_point(2.0) == pytest.approx([1.0, 0.0, 0.0])


def test_finger_distance_is_clamped() -> None:
    finger = _finger(min_distance=0.1, max_distance=0.3)

    assert finger.update_finger_distance(0.05) == 0.1
    assert finger.update_finger_distance(0.5) == 0.3
    assert finger.update_finger_distance(0.2) == 0.2


def test_fingers_return_to_rest_once_pressure_is_released() -> None:
    finger = _finger(rest_near=(1.0, 0.0, 0.0), rest_far=(1.0, -1.0, 0.0))
    model = DeformationModel(fingers={"index": finger})
    _run(model, 1.0)
    assert quat.angle_between(finger.orientation, finger.rest_orientation) > 90.0

    frames = 0
    while frames < 120 and not np.allclose(finger.orientation, finger.rest_orientation):
        model.update(DT, 0.0)
        frames += 1

    assert frames < 120
    assert finger.tip == pytest.approx([0.0, 1.0, 0.0], abs=1e-6)

from __future__ import annotations

import pytest

from pressurefield.schema.output import Measurement


def _measurement(step: int = 1, **overrides) -> Measurement:
    values = dict(
        step=step,
        raw_pressure=512.0,
        wall_time=12.5,
        step_elapsed=3.25,
        lateral_distance=0.05,
        accuracy_pct=50.0,
        cube_point_x=0.2,
        cube_point_y=0.0,
        cube_point_z=0.0,
        target_point_x=0.25,
        target_point_y=0.0,
        target_point_z=0.0,
        material_constant=1.0,
        target_distance=2.85,
        actual_scale_x=0.7,
        target_compression=0.68794,
        compression_error=0.01206,
        non_visual_elapsed=0.0,
    )
    values.update(overrides)
    return Measurement(**values)


@pytest.fixture
def make_measurement():
    return _measurement

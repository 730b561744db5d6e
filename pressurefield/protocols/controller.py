"""Trial state machine driven by a single ``advance()`` command.

::

    WELCOME -> DEVICE_PRESS -> TRIAL_ACTIVE -+-> TRIAL_ACTIVE (next trial)
                                             +-> NON_VISUAL_TRANSITION -> TRIAL_ACTIVE
                                             +-> COMPLETE

A measurement is captured on every ``advance()`` made while a trial is active.
After the trial numbered ``hide_after_step`` the object and hand proxy are
hidden and the session passes once through ``NON_VISUAL_TRANSITION``; from the
next trial on, ``non_visual_elapsed`` counts up from that moment.
"""

from __future__ import annotations

import math
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple

from pressurefield.errors import ConfigurationError
from pressurefield.protocols.experiment_logic import (
    TargetSpec,
    Trial,
    check_plan,
    check_target_order,
    generate_sequence,
    iter_blocks,
)
from pressurefield.schema.output import Measurement
from pressurefield.utils._logger import get_logger


class ExperimentState(str, Enum):
    WELCOME = "welcome"
    DEVICE_PRESS = "device_press"
    TRIAL_ACTIVE = "trial_active"
    NON_VISUAL_TRANSITION = "non_visual_transition"
    COMPLETE = "complete"


class SupportsRecord(Protocol):
    def record(self, measurement: Measurement) -> Any:  # pragma: no cover - typing hook
        ...


@dataclass(frozen=True)
class ControllerSettings:
    total_steps: int = 140
    block_size: int = 10
    target_count: int = 10
    hide_after_step: Optional[int] = 10
    max_distance: float = 0.1
    ref_axis_position: float = 3.1
    material_constants: Tuple[float, float] = (1.0, 2.0)
    max_deformations: Tuple[float, float] = (0.6, 0.75)

    @classmethod
    def from_config(cls, cfg: Any) -> "ControllerSettings":
        hide = cfg.get("hide_after_step")
        return cls(
            total_steps=int(cfg.get("total_steps")),
            block_size=int(cfg.get("block_size")),
            target_count=int(cfg.get("target_count")),
            hide_after_step=int(hide) if hide is not None else None,
            max_distance=float(cfg.get("max_distance")),
            ref_axis_position=float(cfg.get("ref_axis_position")),
            material_constants=tuple(float(v) for v in cfg.get("material_constants")),  # type: ignore[arg-type]
            max_deformations=tuple(float(v) for v in cfg.get("max_deformations")),  # type: ignore[arg-type]
        )

    def validate(self, targets: Sequence[TargetSpec]) -> None:
        check_plan(self.total_steps, self.block_size, self.target_count)
        if len(targets) != self.target_count:
            raise ConfigurationError(
                f"target_count is {self.target_count} but the target table has {len(targets)} entries"
            )
        check_target_order(targets)
        if len(self.material_constants) != 2 or len(self.max_deformations) != 2:
            raise ConfigurationError("material_constants and max_deformations need exactly two values")
        if self.hide_after_step is not None and not 1 <= self.hide_after_step <= self.total_steps:
            raise ConfigurationError(
                f"hide_after_step ({self.hide_after_step}) must lie within 1..{self.total_steps}"
            )
        if self.max_distance <= 0:
            raise ConfigurationError("max_distance must be positive")


@dataclass
class SessionState:
    state: ExperimentState = ExperimentState.WELCOME
    current_step: int = 0
    material_constant: float = 0.0
    hidden_after_threshold: bool = False
    non_visual_timer_start: Optional[float] = None
    history: List[ExperimentState] = field(default_factory=list)


def accuracy_pct(distance: float, max_distance: float) -> float:
    """100 at zero distance, falling linearly to 0 at ``max_distance`` and beyond."""
    ratio = min(1.0, max(0.0, distance / max_distance))
    return max(0.0, 100.0 * (1.0 - ratio))


class ExperimentController:
    """Owns the session state and turns ``advance()`` calls into trials and measurements.

    ``deformation`` must provide ``current_scale``, ``contact_point()`` and
    ``set_max_deformation()``; ``pressure_source`` returns the latest
    :class:`~pressurefield.processing.normalizer.PressureReading` or ``None``.
    All configuration checks happen here, before any state is created.
    """

    def __init__(
        self,
        settings: ControllerSettings,
        targets: Sequence[TargetSpec],
        *,
        deformation: Any,
        pressure_source: Callable[[], Any],
        recorder: Optional[SupportsRecord] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.perf_counter,
        sequence: Optional[Sequence[int]] = None,
    ) -> None:
        settings.validate(targets)
        if sequence is None:
            sequence = generate_sequence(
                settings.total_steps, settings.block_size, settings.target_count, rng
            )
        _check_sequence(sequence, settings)

        self.logger = get_logger(f"{__name__}.{self.__class__.__name__}")
        self.settings = settings
        self.targets: Tuple[TargetSpec, ...] = tuple(targets)
        self.sequence: Tuple[int, ...] = tuple(sequence)
        self.deformation = deformation
        self.pressure_source = pressure_source
        self.recorder = recorder
        self.clock = clock

        # Toggled at the first block boundary, so trial 1 runs with condition 0.
        self._condition = 1
        self.session = SessionState(material_constant=settings.material_constants[self._condition])
        self.trial: Optional[Trial] = None
        self.last_measurement: Optional[Measurement] = None
        self._session_start = clock()

    def __repr__(self) -> str:
        return (
            f"<ExperimentController state={self.state.value} "
            f"step={self.current_step}/{self.settings.total_steps}>"
        )

    # ------------------------------------------------------------------
    # Convenience accessors

    @property
    def state(self) -> ExperimentState:
        return self.session.state

    @property
    def current_step(self) -> int:
        return self.session.current_step

    @property
    def material_constant(self) -> float:
        return self.session.material_constant

    @property
    def objects_visible(self) -> bool:
        return not self.session.hidden_after_threshold

    @property
    def current_target(self) -> Optional[TargetSpec]:
        return self.targets[self.trial.target_id] if self.trial is not None else None

    @property
    def is_complete(self) -> bool:
        return self.session.state is ExperimentState.COMPLETE

    # ------------------------------------------------------------------
    # Core business logic

    def advance(self) -> ExperimentState:
        """Apply one transition from the table and return the new state."""
        state = self.session.state
        if state is ExperimentState.WELCOME:
            self._set_state(ExperimentState.DEVICE_PRESS)
        elif state is ExperimentState.DEVICE_PRESS:
            self._start_trial()
        elif state is ExperimentState.TRIAL_ACTIVE:
            self.capture()
            step = self.session.current_step
            if step == self.settings.hide_after_step and not self.session.hidden_after_threshold:
                self.session.hidden_after_threshold = True
                self.logger.info("Hiding object and hand after step %d", step)
                self._set_state(ExperimentState.NON_VISUAL_TRANSITION)
            elif step >= self.settings.total_steps:
                self._complete()
            else:
                self._start_trial()
        elif state is ExperimentState.NON_VISUAL_TRANSITION:
            self.session.non_visual_timer_start = self.clock()
            self._start_trial()
        return self.session.state

    def capture(self) -> Measurement:
        """Sample the current trial and hand the measurement to the recorder."""
        if self.trial is None:
            raise RuntimeError("No active trial to capture")
        now = self.clock()
        target = self.targets[self.trial.target_id]

        reading = self.pressure_source()
        if reading is None:
            self.logger.warning("No pressure data received before step %d was captured", self.trial.index)
            raw_pressure = math.nan
        else:
            raw_pressure = float(reading.raw)

        cube_point = self.deformation.contact_point()
        distance = abs(float(cube_point[0]) - target.position[0])
        scale_x = float(self.deformation.current_scale[0])
        timer_start = self.session.non_visual_timer_start

        measurement = Measurement(
            step=self.trial.index,
            raw_pressure=raw_pressure,
            wall_time=now - self._session_start,
            step_elapsed=now - self.trial.started_at,
            lateral_distance=distance,
            accuracy_pct=accuracy_pct(distance, self.settings.max_distance),
            cube_point_x=float(cube_point[0]),
            cube_point_y=float(cube_point[1]),
            cube_point_z=float(cube_point[2]),
            target_point_x=target.position[0],
            target_point_y=target.position[1],
            target_point_z=target.position[2],
            material_constant=self.session.material_constant,
            target_distance=self.trial.target_distance,
            actual_scale_x=scale_x,
            target_compression=target.target_compression,
            compression_error=abs(target.target_compression - scale_x),
            non_visual_elapsed=(now - timer_start) if timer_start is not None else 0.0,
        )
        if self.recorder is not None:
            self.recorder.record(measurement)
        self.last_measurement = measurement
        return measurement

    # ------------------------------------------------------------------

    def _start_trial(self) -> None:
        session = self.session
        if session.current_step >= self.settings.total_steps:
            self._complete()
            return
        session.current_step += 1
        step = session.current_step

        if (step - 1) % self.settings.block_size == 0:
            self._toggle_condition()

        target_id = self.sequence[step - 1]
        target = self.targets[target_id]
        self.trial = Trial(
            index=step,
            block_index=(step - 1) // self.settings.block_size,
            target_id=target_id,
            target_distance=abs(self.settings.ref_axis_position - target.position[0]),
            started_at=self.clock(),
        )
        self.logger.debug("Step %d: target %d", step, target_id)
        self._set_state(ExperimentState.TRIAL_ACTIVE)

    def _toggle_condition(self) -> None:
        self._condition = 1 - self._condition
        self.session.material_constant = self.settings.material_constants[self._condition]
        applied = self.deformation.set_max_deformation(self.settings.max_deformations[self._condition])
        self.logger.info(
            "Block %d: material constant %s, max deformation %s",
            (self.session.current_step - 1) // self.settings.block_size + 1,
            self.session.material_constant,
            applied,
        )

    def _complete(self) -> None:
        self.trial = None
        self._set_state(ExperimentState.COMPLETE)

    def _set_state(self, new_state: ExperimentState) -> None:
        old = self.session.state
        self.session.state = new_state
        self.session.history.append(new_state)
        if old is not new_state:
            self.logger.info("%s -> %s (step %d)", old.value, new_state.value, self.session.current_step)


def _check_sequence(sequence: Sequence[int], settings: ControllerSettings) -> None:
    if len(sequence) != settings.total_steps:
        raise ConfigurationError(
            f"sequence has {len(sequence)} entries, expected {settings.total_steps}"
        )
    expected = list(range(settings.target_count))
    for idx, block in enumerate(iter_blocks(sequence, settings.block_size)):
        if sorted(block) != expected:
            raise ConfigurationError(f"block {idx} is not a permutation of the target ids")

"""
Procedure class tying configuration, pressure input, deformation and recording
into one compression-matching session.

The presentation layer drives a ``Procedure`` with two calls: ``tick(dt)`` once
per frame, and ``advance()`` whenever the participant presses the advance key.
Everything the presentation needs to react to is published on ``events``.
"""
import json
import random
import time
from datetime import datetime
from pathlib import Path

from typing import Any, Callable, Dict, Optional, Type

from PyQt6.QtCore import QObject, pyqtSignal

from pressurefield.config import ExperimentConfig
from pressurefield.data.recorder import DataRecorder
from pressurefield.errors import RecordingError
from pressurefield.hardware import HardwareManager
from pressurefield.model.deformation import DeformationModel, FramePose
from pressurefield.processing.normalizer import PressureNormalizer
from pressurefield.protocols.controller import ExperimentController, ExperimentState
from pressurefield.schema.output import build_session_summary, rows_to_frame
from pressurefield.utils._logger import add_file_handler, get_logger, remove_file_handler


class ProcedureSignals(QObject):
    """All procedure-level signals that a Qt GUI can connect to."""
    procedure_started      = pyqtSignal()
    state_changed          = pyqtSignal(str)      # ExperimentState value
    visibility_changed     = pyqtSignal(bool)     # objects visible
    trial_started          = pyqtSignal(int, int) # step, target id
    measurement_recorded   = pyqtSignal(object)   # Measurement
    procedure_error        = pyqtSignal(str)      # emits error message
    procedure_finished     = pyqtSignal()


class Procedure:
    """One participant session.

    Construction validates the whole configuration and builds the controller,
    so a bad configuration is reported before any socket or file is opened.
    """

    def __init__(
        self,
        experiment_config: ExperimentConfig,
        *,
        overrides: Optional[Dict[str, Any]] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        self.events = ProcedureSignals()
        self.config = experiment_config

        if overrides:
            for key, value in overrides.items():
                self.config.set(key, value)

        self.protocol = self.config.protocol or "compression_matching"
        self.logger = get_logger(f"PROCEDURE.{self.protocol}")

        settings, targets = self.config.validate()

        sensor_params = self.hardware.sensor_params
        telemetry = self.hardware.telemetry_params
        self.normalizer = PressureNormalizer(sensor_params["min_pressure"], sensor_params["max_pressure"])
        self.deformation = DeformationModel.from_config(self.config.deformation)
        self.recorder = DataRecorder(
            telemetry["host"], telemetry["port"], telemetry_enabled=telemetry["enabled"]
        )
        self.controller = ExperimentController(
            settings,
            targets,
            deformation=self.deformation,
            pressure_source=self.normalizer.latest,
            recorder=self.recorder,
            rng=rng or self.config.make_rng(),
            clock=clock,
        )

        self.log_path: Optional[Path] = None
        self.summary_path: Optional[Path] = None
        self.aborted = False
        self._running = False
        self.start_time: Optional[datetime] = None
        self.stopped_time: Optional[datetime] = None
        self.logger.info(f"Initialized procedure: {self.protocol}")

    # ------------------------------------------------------------------
    # Convenience accessors

    @property
    def hardware(self) -> HardwareManager:
        return self.config.hardware

    @property
    def sensor(self):
        return self.hardware.sensor

    @property
    def state(self) -> ExperimentState:
        return self.controller.state

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Core business logic

    def initialize(self) -> Path:
        """Open the pressure source and the measurement log.

        A sensor that cannot bind or a log file that cannot be created aborts
        startup; nothing is left open in either case.
        """
        if self._running:
            raise RuntimeError("Procedure already initialized")

        try:
            self.hardware.initialize()
            self.normalizer.attach(self.sensor)
            self.hardware.start()
        except Exception as e:
            self.logger.error(f"Failed to initialize hardware: {e}")
            self.hardware.shutdown()
            raise

        try:
            log_path = Path(self.config.make_path("measurements", "csv", "beh", create_dir=True))
            add_file_handler(log_path.with_suffix(".log"))
            self.recorder.open(log_path)
        except (OSError, RecordingError):
            self.hardware.shutdown()
            remove_file_handler()
            raise

        self.log_path = log_path
        self.start_time = datetime.now()
        self._running = True
        self.logger.info("================= Session ready ===================")
        self.events.procedure_started.emit()
        self.events.state_changed.emit(self.state.value)
        return log_path

    def tick(self, dt: float) -> FramePose:
        """Per-frame update: read the newest pressure, move the object and fingers."""
        pressure = self.normalizer.normalized_or(0.0)
        return self.deformation.update(dt, pressure)

    def advance(self) -> ExperimentState:
        """Participant pressed the advance key."""
        if self.aborted:
            raise RuntimeError("Procedure aborted after a recording failure")

        before_state = self.controller.state
        before_visible = self.controller.objects_visible
        before_step = self.controller.current_step
        before_measurement = self.controller.last_measurement

        try:
            state = self.controller.advance()
        except RecordingError as exc:
            self.aborted = True
            self.logger.critical(f"Measurement could not be recorded, stopping session: {exc}")
            self.events.procedure_error.emit(str(exc))
            self.shutdown()
            raise

        measurement = self.controller.last_measurement
        if measurement is not None and measurement is not before_measurement:
            self.events.measurement_recorded.emit(measurement)
        if self.controller.objects_visible != before_visible:
            self.events.visibility_changed.emit(self.controller.objects_visible)
        if state is not before_state:
            self.events.state_changed.emit(state.value)
        trial = self.controller.trial
        if trial is not None and self.controller.current_step != before_step:
            self.events.trial_started.emit(trial.index, trial.target_id)
        if state is ExperimentState.COMPLETE and before_state is not ExperimentState.COMPLETE:
            self.logger.info("================= Session complete ===================")
            self.events.procedure_finished.emit()
        return state

    def shutdown(self) -> None:
        """Close the sensor and log, then write the session summary. Safe to call twice."""
        if not self._running:
            return
        self._running = False
        self.stopped_time = datetime.now()
        self.hardware.shutdown()
        self.normalizer.detach(self.sensor)
        self.recorder.close()
        try:
            self.save_data()
        except OSError as e:
            self.logger.error(f"Failed to write session summary: {e}")
        finally:
            remove_file_handler()

    # ------------------------------------------------------------------
    def save_data(self) -> Optional[Path]:
        if self.log_path is None:
            self.logger.warning("Measurement log never opened; skipping summary")
            return None

        frame = rows_to_frame(self.recorder.measurements)
        summary = build_session_summary(self.config, frame)
        summary["session"] = {
            "state": self.state.value,
            "steps_completed": self.controller.current_step,
            "aborted": self.aborted,
            "started": self.start_time.isoformat() if self.start_time else None,
            "stopped": self.stopped_time.isoformat() if self.stopped_time else None,
            "notes": list(self.config.notes),
        }
        path = self.log_path.with_name(f"{self.log_path.stem}_summary.json")
        path.write_text(json.dumps(summary, indent=2), encoding="utf-8")
        self.summary_path = path
        self.logger.info(f"Session summary written to {path}")
        return path

    # ------------------------------------------------------------------

    def add_note(self, note: str) -> None:
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        self.config.notes.append(f"{timestamp}: {note}")
        self.logger.info(f"Added note: {note}")


# Factory function for creating procedures
def create_procedure(
    procedure_class: Type[Procedure] = Procedure,
    *,
    config: Optional[ExperimentConfig] = None,
    config_path: Optional[str] = None,
    hardware_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> Procedure:
    """Instantiate a procedure using an existing or newly loaded configuration."""

    if config is None:
        if config_path:
            config = ExperimentConfig.from_file(config_path, overrides)
            overrides = None
        else:
            config = ExperimentConfig(hardware_path)

    return procedure_class(config, overrides=overrides, **kwargs)

from pressurefield.protocols.controller import (
    ControllerSettings,
    ExperimentController,
    ExperimentState,
    SessionState,
    accuracy_pct,
)
from pressurefield.protocols.experiment_logic import (
    TargetSpec,
    Trial,
    build_target_table,
    generate_sequence,
    iter_blocks,
)

__all__ = [
    "ControllerSettings",
    "ExperimentController",
    "ExperimentState",
    "SessionState",
    "TargetSpec",
    "Trial",
    "accuracy_pct",
    "build_target_table",
    "generate_sequence",
    "iter_blocks",
]

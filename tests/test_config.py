from __future__ import annotations

import json
import os
import shutil
from pathlib import Path

import pytest

from pressurefield.config import ExperimentConfig
from pressurefield.errors import ConfigurationError
from pressurefield.utils.config import create_config_template, load_config_file, validate_config_file

SAMPLE_DIR = Path(__file__).with_name("sample_experiment")


@pytest.fixture
def sample_config(tmp_path) -> Path:
    for name in ("experiment.yaml", "hardware.yaml"):
        shutil.copy(SAMPLE_DIR / name, tmp_path / name)
    return tmp_path / "experiment.yaml"


def test_from_file_reads_every_block(sample_config) -> None:
    config = ExperimentConfig.from_file(str(sample_config))

    assert config.subject == "042"
    assert config.session == "02"
    assert config.get("total_steps") == 20
    assert config.get("rng_seed") == 7
    assert len(config.targets) == 10
    assert config.deformation["fingers"]["thumb"]["rotation_speed"] == 0.0
    assert config.deformation["fingers"]["index"]["min_distance"] == 0.1
    assert config.hardware.sensor_params["host"] == "127.0.0.1"
    assert config.hardware.telemetry_params["enabled"] is False


def test_relative_paths_resolve_against_config_file(sample_config) -> None:
    config = ExperimentConfig.from_file(str(sample_config))
    base = sample_config.resolve().parent

    assert config.get("experiment_directory") == str(base / "output")
    assert config.get("hardware_config_file") == str(base / "hardware.yaml")
    assert config.save_dir == os.path.join(str(base / "output"), "data")


def test_overrides_win_over_file_values(sample_config) -> None:
    config = ExperimentConfig.from_file(str(sample_config), {"subject": "099"})

    assert config.subject == "099"


def test_defaults_without_any_file() -> None:
    config = ExperimentConfig()
    settings, targets = config.validate()

    assert settings.total_steps == 140
    assert settings.hide_after_step == 10
    assert settings.material_constants == (1.0, 2.0)
    assert [t.target_compression for t in targets][:2] == [0.68794, 0.66001]
    assert config.hardware.sensor_params["port"] == 8889
    assert config.hardware.telemetry_params["port"] == 8893


def test_inline_hardware_block() -> None:
    config = ExperimentConfig.from_mapping(
        {"Hardware": {"sensor": {"type": "simulated", "max_pressure": 500}}}
    )

    assert config.hardware.sensor_params["type"] == "simulated"
    assert config.hardware.sensor_params["max_pressure"] == 500.0


@pytest.mark.parametrize(
    "block",
    [
        {"total_steps": 0},
        {"max_distance": -1},
        {"material_constants": [1.0]},
        {"total_steps": "many"},
    ],
)
def test_schema_errors_surface_while_loading(block) -> None:
    with pytest.raises(ConfigurationError):
        ExperimentConfig.from_mapping({"Configuration": block})


@pytest.mark.parametrize(
    "block",
    [
        {"block_size": 5},
        {"total_steps": 145},
        {"hide_after_step": 141},
    ],
)
def test_inconsistent_plans_fail_validation(block) -> None:
    config = ExperimentConfig.from_mapping({"Configuration": block})

    with pytest.raises(ConfigurationError):
        config.validate()


def test_target_table_must_match_target_count() -> None:
    config = ExperimentConfig.from_mapping(
        {"Targets": [{"position": [0.1, 0, 0], "target_compression": 0.5}]}
    )

    with pytest.raises(ConfigurationError, match="target_count"):
        config.validate()


def test_make_path_builds_bids_layout(tmp_path) -> None:
    config = ExperimentConfig.from_mapping(
        {"Configuration": {"subject": "007", "session": "01", "experiment_directory": str(tmp_path)}}
    )

    path = Path(config.make_path("measurements", "csv", "beh", create_dir=True))

    assert path.parent == tmp_path / "data" / "sub-007" / "ses-01" / "beh"
    assert path.parent.is_dir()
    assert path.name.endswith("_sub-007_ses-01_task-squeeze_measurements.csv")

    path.write_text("taken")
    second = Path(config.make_path("measurements", "csv", "beh"))
    assert second != path


def test_dataframe_lists_parameters() -> None:
    frame = ExperimentConfig().dataframe

    assert "total_steps" in list(frame["Parameter"])


def test_template_round_trip(tmp_path) -> None:
    path = tmp_path / "template.yaml"
    template = create_config_template(path)

    assert set(template) == {"Configuration", "Targets", "Deformation", "Hardware"}
    assert validate_config_file(path)
    assert load_config_file(path)["Hardware"]["sensor"]["port"] == 8889


def test_json_configs_are_supported(tmp_path) -> None:
    path = tmp_path / "experiment.json"
    path.write_text(json.dumps({"Configuration": {"subject": "j1", "total_steps": 10, "hide_after_step": None}}))

    config = ExperimentConfig.from_file(str(path))

    assert config.subject == "j1"
    assert config.validate()[0].hide_after_step is None


def test_validate_config_file_reports_failures(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"Configuration": {"block_size": 3}}))

    assert validate_config_file(path) is False

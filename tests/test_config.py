import textwrap

import pytest

from tank_model.config import CalibrationConfig, ProjectConfig
from tank_model.model.rprop import RpropSettings


def write_config(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


MINIMAL = """
data:
  rainfall: data/rain.txt
  runoff: data/flow.txt
"""


def test_defaults(tmp_path):
    config = ProjectConfig.load(write_config(tmp_path, MINIMAL))
    assert config.basin.area_km2 == 765.0
    assert config.parameters.area_km2 == 765.0
    assert config.time_interval_seconds == 3600.0
    assert config.data.rainfall == tmp_path / "data" / "rain.txt"
    assert config.output_dir == tmp_path / "outputs"
    assert config.output_dir.is_dir()
    assert config.calibration.objective == "RMSE"
    assert config.calibration.rprop == RpropSettings()
    assert config.bounds["h1"] == (50.0, 200.0)


def test_full_configuration(tmp_path):
    body = MINIMAL + """
basin:
  id: TEST
  area_km2: 100
time_interval_seconds: 1800
parameters:
  h1: 75
bounds:
  h1: [60, 90]
calibration:
  objective: nse
  max_iterations: 20
  parameters: [h1, a1]
  rprop:
    step_max: 10
output_dir: results
"""
    config = ProjectConfig.load(write_config(tmp_path, body))
    assert config.basin.id == "TEST"
    assert config.parameters.area_km2 == 100.0
    assert config.parameters.h1 == 75.0
    assert config.bounds["h1"] == (60.0, 90.0)
    assert config.time_interval_seconds == 1800.0
    assert config.calibration.objective == "NSE"
    assert config.calibration.parameters == ["h1", "a1"]
    assert config.calibration.rprop.step_max == 10.0
    assert config.calibration.rprop.acceleration_factor == 1.2
    assert config.output_dir == tmp_path / "results"


@pytest.mark.parametrize(
    "extra",
    [
        "bounds:\n  h1: [90, 60]\n",
        "bounds:\n  area: [1, 2]\n",
        "parameters:\n  h9: 1\n",
        "calibration:\n  objective: KGE\n",
        "calibration:\n  parameters: [area_km2]\n",
        "calibration:\n  rprop:\n    momentum: 0.9\n",
        "time_interval_seconds: 0\n",
    ],
)
def test_invalid_configuration(tmp_path, extra):
    with pytest.raises(ValueError):
        ProjectConfig.load(write_config(tmp_path, MINIMAL + extra))


def test_missing_data_section(tmp_path):
    with pytest.raises(ValueError):
        ProjectConfig.load(write_config(tmp_path, "basin:\n  id: X\n"))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ProjectConfig.load(tmp_path / "absent.yaml")


def test_options_carry_thresholds():
    config = CalibrationConfig(max_iterations=7, initial_step=0.2, min_objective=0.5)
    options = config.options()
    assert (options.max_iterations, options.initial_step, options.min_objective) == (7, 0.2, 0.5)
    assert options.min_objective_change == 1e-7
    assert options.progress_callback is None

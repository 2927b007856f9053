import math

import numpy as np
import pytest

from tank_model.model.metrics import DataShapeMismatch, nse, rmse
from tank_model.model.objective import ObjectiveFunction, resolve_metric
from tank_model.model.tank import CALIBRATED_PARAMETERS, TankParameters, simulate_runoff


@pytest.fixture
def observed(storm_event):
    truth = TankParameters(a1=0.2, b2=0.03)
    return simulate_runoff(storm_event, truth, 3600.0)


def test_rmse_objective_matches_metric(storm_event, observed):
    base = TankParameters()
    objective = ObjectiveFunction(storm_event, observed, base, 3600.0, metric="RMSE")
    vector = base.to_vector(CALIBRATED_PARAMETERS)
    expected = rmse(observed, simulate_runoff(storm_event, base, 3600.0))
    assert objective(vector) == pytest.approx(expected)
    assert objective.evaluations == 1


def test_nse_objective_is_squared_shortfall(storm_event, observed):
    base = TankParameters()
    objective = ObjectiveFunction(storm_event, observed, base, 3600.0, metric="nse")
    value = nse(observed, simulate_runoff(storm_event, base, 3600.0))
    assert objective.metric == "NSE"
    assert objective(base.to_vector()) == pytest.approx((1 - value) ** 2)


def test_true_parameters_give_zero_loss(storm_event, observed):
    truth = TankParameters(a1=0.2, b2=0.03)
    for metric in ("RMSE", "NSE", "PeakFlowError"):
        objective = ObjectiveFunction(storm_event, observed, TankParameters(), 3600.0, metric=metric)
        assert objective(truth.to_vector()) == pytest.approx(0.0, abs=1e-12)


def test_peak_flow_relative_error():
    rainfall = [0.0, 0.0]
    observed = np.array([2.0, -1.0])
    base = TankParameters(area_km2=3.6, a1=0.0, a2=0.0, a3=0.0, b1=0.0, b2=0.0,
                          initial_upper_storage=0.0, initial_lower_storage=0.0)
    objective = ObjectiveFunction(rainfall, observed, base, 3600.0, metric="PeakFlowError",
                                  parameter_names=["b2"])
    # baseflow is zero, so the simulated peak is 0 and the relative error is -100 %
    assert objective([0.0]) == pytest.approx(1.0)


def test_peak_flow_falls_back_to_absolute_error():
    base = TankParameters(area_km2=3.6, h1=0.0, a1=1.0, a2=0.0, a3=0.0, b2=0.0,
                          initial_upper_storage=0.0, initial_lower_storage=0.0)
    objective = ObjectiveFunction([3.0], [0.0], base, 3600.0, metric="PeakFlowError",
                                  parameter_names=["a1"])
    assert objective([1.0]) == pytest.approx(9.0)


def test_peak_flow_without_valid_observation_is_infinite(storm_event):
    observed = [-1.0] * len(storm_event)
    objective = ObjectiveFunction(storm_event, observed, TankParameters(), 3600.0, metric="PeakFlowError")
    assert objective(TankParameters().to_vector()) == float("inf")


def test_undefined_metric_becomes_infinite(storm_event):
    observed = [-1.0] * len(storm_event)
    for metric in ("RMSE", "NSE"):
        objective = ObjectiveFunction(storm_event, observed, TankParameters(), 3600.0, metric=metric)
        assert objective(TankParameters().to_vector()) == float("inf")


def test_nan_parameters_become_infinite(storm_event, observed):
    objective = ObjectiveFunction(storm_event, observed, TankParameters(), 3600.0)
    vector = TankParameters().to_vector()
    vector[4] = np.nan
    assert objective(vector) == float("inf")


def test_nan_threshold_parameter_becomes_infinite(storm_event, observed):
    # A NaN threshold disables its outlet instead of poisoning the runoff.
    objective = ObjectiveFunction(storm_event, observed, TankParameters(), 3600.0, metric="NSE")
    vector = TankParameters().to_vector()
    vector[CALIBRATED_PARAMETERS.index("h1")] = np.nan
    assert objective(vector) == float("inf")
    assert objective.evaluations == 1


def test_nan_rainfall_becomes_infinite(storm_event, observed):
    rainfall = np.array(storm_event, dtype=float)
    rainfall[3] = np.nan
    for metric in ("RMSE", "NSE", "PeakFlowError"):
        objective = ObjectiveFunction(rainfall, observed, TankParameters(), 3600.0, metric=metric)
        assert objective(TankParameters().to_vector()) == float("inf")


def test_length_mismatch_rejected(storm_event):
    with pytest.raises(DataShapeMismatch):
        ObjectiveFunction(storm_event, [1.0, 2.0], TankParameters(), 3600.0)


def test_unknown_metric_rejected(storm_event):
    with pytest.raises(ValueError):
        ObjectiveFunction(storm_event, storm_event, TankParameters(), 3600.0, metric="KGE")


def test_resolve_metric_case_insensitive():
    assert resolve_metric("peakflowerror") == "PeakFlowError"
    assert resolve_metric("rmse") == "RMSE"


def test_parameters_for_uses_base_values(storm_event, observed):
    base = TankParameters(area_km2=42.0)
    objective = ObjectiveFunction(storm_event, observed, base, 3600.0, parameter_names=["h1"])
    params = objective.parameters_for([150.0])
    assert params.h1 == 150.0
    assert params.area_km2 == 42.0
    assert math.isfinite(objective([150.0]))
    np.testing.assert_array_equal(objective.last_simulation, objective.simulate([150.0]))

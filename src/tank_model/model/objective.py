"""Scalar calibration objectives built on the tank model."""
from __future__ import annotations

import logging
from typing import Callable, Dict, Sequence

import numpy as np

from .metrics import DataShapeMismatch, nse, rmse
from .tank import CALIBRATED_PARAMETERS, TankModel, TankParameters

LOGGER = logging.getLogger(__name__)

PEAK_EPSILON = 1e-6


def _rmse_loss(observed: np.ndarray, simulated: np.ndarray) -> float:
    return rmse(observed, simulated)


def _nse_loss(observed: np.ndarray, simulated: np.ndarray) -> float:
    return (1 - nse(observed, simulated)) ** 2


def _peak_flow_loss(observed: np.ndarray, simulated: np.ndarray) -> float:
    valid = observed[observed >= 0]
    if valid.size == 0:
        return float("inf")
    obs_peak = valid.max()
    sim_peak = simulated.max()
    if obs_peak <= PEAK_EPSILON:
        return float((sim_peak - obs_peak) ** 2)
    return float(((sim_peak - obs_peak) / obs_peak) ** 2)


METRICS: Dict[str, Callable[[np.ndarray, np.ndarray], float]] = {
    "RMSE": _rmse_loss,
    "NSE": _nse_loss,
    "PeakFlowError": _peak_flow_loss,
}


def resolve_metric(name: str) -> str:
    """Return the canonical spelling of a metric name (case-insensitive)."""
    lookup = {key.lower(): key for key in METRICS}
    try:
        return lookup[name.lower()]
    except KeyError:
        raise ValueError(f"Unknown objective metric '{name}'. Choose from {sorted(METRICS)}") from None


class ObjectiveFunction:
    """Loss of a parameter vector against the observed runoff; lower is better.

    The vector holds engineering-unit values for ``parameter_names``; all other
    parameters come from ``base_parameters``. Non-finite parameters, rainfall,
    simulated runoff or losses are reported as ``inf`` so the optimizer always
    receives a comparable scalar.
    """

    def __init__(
        self,
        rainfall: Sequence[float],
        observed: Sequence[float],
        base_parameters: TankParameters,
        interval_seconds: float,
        metric: str = "RMSE",
        parameter_names: Sequence[str] = CALIBRATED_PARAMETERS,
    ) -> None:
        self.rainfall = np.asarray(rainfall, dtype=float)
        self._finite_rainfall = bool(np.all(np.isfinite(self.rainfall)))
        self.observed = np.asarray(observed, dtype=float)
        if self.rainfall.shape != self.observed.shape:
            raise DataShapeMismatch(
                f"rainfall and runoff series differ in length ({self.rainfall.size} != {self.observed.size})"
            )
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self.base_parameters = base_parameters
        self.interval_seconds = interval_seconds
        self.metric = resolve_metric(metric)
        self.parameter_names = tuple(parameter_names)
        self._loss = METRICS[self.metric]
        self.evaluations = 0
        self.last_simulation: np.ndarray | None = None

    def parameters_for(self, vector: Sequence[float]) -> TankParameters:
        return TankParameters.from_vector(self.parameter_names, vector, self.base_parameters)

    def simulate(self, vector: Sequence[float]) -> np.ndarray:
        return TankModel(self.parameters_for(vector)).run(self.rainfall, self.interval_seconds)

    def __call__(self, vector: Sequence[float]) -> float:
        self.evaluations += 1
        vector = np.asarray(vector, dtype=float)
        if not (self._finite_rainfall and np.all(np.isfinite(vector))):
            return float("inf")
        with np.errstate(all="ignore"):
            try:
                simulated = self.simulate(vector)
                self.last_simulation = simulated
                if not np.all(np.isfinite(simulated)):
                    return float("inf")
                loss = self._loss(self.observed, simulated)
            except (ArithmeticError, ValueError) as exc:
                LOGGER.debug("Objective evaluation failed: %s", exc)
                return float("inf")
        if not np.isfinite(loss):
            return float("inf")
        return float(loss)


__all__ = ["METRICS", "ObjectiveFunction", "resolve_metric"]

"""Goodness-of-fit statistics for simulated versus observed runoff.

Observed runoff uses negative values to flag missing records; only index
positions with a valid observation take part in a statistic. A non-finite
simulated value at such a position makes RMSE and NSE ``nan``, as does any
statistic that cannot be computed.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Sequence, Tuple

import numpy as np


class DataShapeMismatch(ValueError):
    """Raised when series that must be index-aligned differ in length."""


def _as_pair(observed: Sequence[float], simulated: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    obs = np.asarray(observed, dtype=float)
    sim = np.asarray(simulated, dtype=float)
    if obs.shape != sim.shape:
        raise DataShapeMismatch(
            f"observed and simulated series differ in length ({obs.size} != {sim.size})"
        )
    return obs, sim


def valid_mask(observed: Sequence[float], simulated: Sequence[float]) -> np.ndarray:
    """Positions holding a usable observation; the simulated series is only
    checked for alignment."""
    obs, _ = _as_pair(observed, simulated)
    return np.isfinite(obs) & (obs >= 0)


def rmse(observed: Sequence[float], simulated: Sequence[float]) -> float:
    """Root mean square error."""
    obs, sim = _as_pair(observed, simulated)
    mask = valid_mask(obs, sim)
    if not mask.any():
        return float("nan")
    return float(np.sqrt(np.mean((sim[mask] - obs[mask]) ** 2)))


def nse(observed: Sequence[float], simulated: Sequence[float]) -> float:
    """Nash-Sutcliffe Efficiency."""
    obs, sim = _as_pair(observed, simulated)
    mask = valid_mask(obs, sim)
    if mask.sum() < 2:
        return float("nan")
    obs = obs[mask]
    sim = sim[mask]
    numerator = float(np.sum((obs - sim) ** 2))
    denominator = float(np.sum((obs - obs.mean()) ** 2))
    if np.isnan(numerator):
        return float("nan")
    if denominator == 0:
        return 1.0 if numerator == 0 else float("-inf")
    return 1 - numerator / denominator


def peak_flow_error(observed: Sequence[float], simulated: Sequence[float]) -> float:
    """Relative error of the simulated peak against the observed peak (%)."""
    obs, sim = _as_pair(observed, simulated)
    valid_obs = obs[np.isfinite(obs) & (obs >= 0)]
    finite_sim = sim[np.isfinite(sim)]
    if valid_obs.size == 0 or finite_sim.size == 0:
        return float("nan")
    obs_peak = valid_obs.max()
    if obs_peak <= 0:
        return float("nan")
    return float((finite_sim.max() - obs_peak) / obs_peak * 100)


def volume_error(
    observed: Sequence[float], simulated: Sequence[float], interval_seconds: float = 3600.0
) -> float:
    """Relative error of the total simulated runoff volume (%)."""
    obs, sim = _as_pair(observed, simulated)
    obs_volume = np.nansum(np.where(obs > 0, obs, 0.0)) * interval_seconds
    sim_volume = np.nansum(np.where(sim > 0, sim, 0.0)) * interval_seconds
    if obs_volume <= 0:
        return float("nan")
    return float((sim_volume - obs_volume) / obs_volume * 100)


def time_to_peak_error(
    observed: Sequence[float], simulated: Sequence[float], interval_seconds: float = 3600.0
) -> float:
    """Timing offset of the simulated peak relative to the observed peak (hours)."""
    obs, sim = _as_pair(observed, simulated)
    obs = np.where(np.isfinite(obs) & (obs >= 0), obs, -np.inf)
    sim = np.where(np.isfinite(sim), sim, -np.inf)
    if not np.isfinite(obs).any() or not np.isfinite(sim).any():
        return float("nan")
    offset = int(np.argmax(sim)) - int(np.argmax(obs))
    return offset * interval_seconds / 3600.0


def runoff_coefficient(
    area_km2: float,
    rainfall: Sequence[float],
    runoff: Sequence[float],
    interval_seconds: float = 3600.0,
) -> float:
    """Ratio of runoff volume to rainfall volume over the catchment."""
    rain, flow = _as_pair(rainfall, runoff)
    rain_volume = np.nansum(rain) / 1000.0 * area_km2 * 1e6
    if rain_volume <= 0:
        return float("nan")
    runoff_volume = np.nansum(np.where(flow > 0, flow, 0.0)) * interval_seconds
    return float(runoff_volume / rain_volume)


@dataclass(frozen=True)
class FitStatistics:
    rmse: float
    nse: float
    peak_flow_error: float
    volume_error: float
    time_to_peak_error: float
    simulated_runoff_coefficient: float = float("nan")
    observed_runoff_coefficient: float = float("nan")

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


def fit_statistics(
    observed: Sequence[float],
    simulated: Sequence[float],
    interval_seconds: float = 3600.0,
    rainfall: Sequence[float] | None = None,
    area_km2: float | None = None,
) -> FitStatistics:
    sim_coeff = obs_coeff = float("nan")
    if rainfall is not None and area_km2:
        sim_coeff = runoff_coefficient(area_km2, rainfall, simulated, interval_seconds)
        obs_coeff = runoff_coefficient(area_km2, rainfall, observed, interval_seconds)
    return FitStatistics(
        rmse=rmse(observed, simulated),
        nse=nse(observed, simulated),
        peak_flow_error=peak_flow_error(observed, simulated),
        volume_error=volume_error(observed, simulated, interval_seconds),
        time_to_peak_error=time_to_peak_error(observed, simulated, interval_seconds),
        simulated_runoff_coefficient=sim_coeff,
        observed_runoff_coefficient=obs_coeff,
    )


__all__ = [
    "DataShapeMismatch",
    "FitStatistics",
    "fit_statistics",
    "nse",
    "peak_flow_error",
    "rmse",
    "runoff_coefficient",
    "time_to_peak_error",
    "valid_mask",
    "volume_error",
]

"""Two-tank conceptual rainfall-runoff model."""
from __future__ import annotations

import math
from dataclasses import asdict, dataclass, replace as dc_replace
from typing import Dict, Iterator, List, Mapping, NamedTuple, Sequence, Tuple

import numpy as np
import pandas as pd

CALIBRATED_PARAMETERS: Tuple[str, ...] = (
    "h1",
    "h2",
    "a1",
    "a2",
    "a3",
    "h3",
    "b1",
    "b2",
    "b3",
    "initial_upper_storage",
    "initial_lower_storage",
)


@dataclass
class TankParameters:
    """Parameter set for the two-tank model.

    Heights and storages are in mm, coefficients are fractions per interval
    and the catchment area is in km^2.
    """

    area_km2: float = 765.0
    h1: float = 90.5
    h2: float = 60.0
    a1: float = 0.12
    a2: float = 0.025
    a3: float = 0.02
    h3: float = 20.0
    b1: float = 0.2
    b2: float = 0.021
    b3: float = 0.001
    initial_upper_storage: float = 10.0
    initial_lower_storage: float = 10.0

    @staticmethod
    def bounds() -> Dict[str, Tuple[float, float]]:
        return {
            "h1": (50.0, 200.0),
            "h2": (10.0, 100.0),
            "a1": (0.0, 1.0),
            "a2": (0.0, 1.0),
            "a3": (0.0, 1.0),
            "h3": (5.0, 20.0),
            "b1": (0.0, 1.0),
            "b2": (0.0, 1.0),
            "b3": (0.0, 1.0),
            "initial_upper_storage": (1.0, 50.0),
            "initial_lower_storage": (1.0, 50.0),
        }

    @staticmethod
    def from_vector(
        names: Sequence[str], vector: Sequence[float], base: "TankParameters | None" = None
    ) -> "TankParameters":
        base = base or TankParameters()
        return base.replace(**{name: float(value) for name, value in zip(names, vector)})

    def to_vector(self, names: Sequence[str] = CALIBRATED_PARAMETERS) -> np.ndarray:
        return np.array([getattr(self, name) for name in names], dtype=float)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    def replace(self, **changes: float) -> "TankParameters":
        return dc_replace(self, **changes)


class TankStep(NamedTuple):
    upper_storage: float
    lower_storage: float
    surface: float
    intermediate: float
    infiltration: float
    subsurface: float
    baseflow: float
    percolation: float
    runoff_mm: float


def proportional_outflows(candidates: Sequence[float], storage: float) -> List[float]:
    """Scale candidate outflows so that their sum never exceeds ``storage``.

    The largest outflow absorbs the rounding error of the scaling, so the
    floating-point sum of the result is at most ``storage``. NaN propagates.
    """
    total = sum(candidates)
    if total <= storage:
        return list(candidates)
    if total == 0:
        return [0.0 for _ in candidates]
    ratio = storage / total
    scaled = [value * ratio for value in candidates]
    largest = max(range(len(scaled)), key=lambda i: scaled[i])
    others = sum(value for i, value in enumerate(scaled) if i != largest)
    scaled[largest] = max(storage - others, 0.0)
    while sum(scaled) > storage and scaled[largest] > 0:
        scaled[largest] = math.nextafter(scaled[largest], 0.0)
    return scaled


class TankModel:
    """Upper tank with surface, intermediate and infiltration outlets feeding a
    lower tank with sub-surface, baseflow and deep percolation outlets."""

    def __init__(self, params: TankParameters) -> None:
        self.params = params

    def _steps(self, rainfall: Sequence[float]) -> Iterator[TankStep]:
        p = self.params
        upper = p.initial_upper_storage
        lower = p.initial_lower_storage
        for rain in rainfall:
            upper += rain
            surface = p.a1 * (upper - p.h1) if upper > p.h1 else 0.0
            intermediate = p.a2 * (upper - p.h2) if upper > p.h2 else 0.0
            infiltration = p.a3 * upper if upper > 0 else 0.0
            surface, intermediate, infiltration = proportional_outflows(
                (surface, intermediate, infiltration), upper
            )
            upper = max(upper - (surface + intermediate + infiltration), 0.0)

            lower += infiltration
            subsurface = p.b1 * (lower - p.h3) if lower > p.h3 else 0.0
            baseflow = p.b2 * lower if lower > 0 else 0.0
            percolation = p.b3 * lower if lower > 0 else 0.0
            subsurface, baseflow, percolation = proportional_outflows(
                (subsurface, baseflow, percolation), lower
            )
            lower = max(lower - (subsurface + baseflow + percolation), 0.0)

            yield TankStep(
                upper_storage=upper,
                lower_storage=lower,
                surface=surface,
                intermediate=intermediate,
                infiltration=infiltration,
                subsurface=subsurface,
                baseflow=baseflow,
                percolation=percolation,
                runoff_mm=surface + intermediate + subsurface + baseflow,
            )

    def depth_to_flow(self, depth_mm: np.ndarray | float, interval_seconds: float) -> np.ndarray | float:
        """Convert runoff depth per interval (mm) to discharge (m^3/s)."""
        return depth_mm / 1000.0 * (self.params.area_km2 * 1e6) / interval_seconds

    def run(self, rainfall: Sequence[float], interval_seconds: float) -> np.ndarray:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        depth = np.fromiter(
            (step.runoff_mm for step in self._steps(rainfall)),
            dtype=float,
            count=len(rainfall),
        )
        return self.depth_to_flow(depth, interval_seconds)

    def trace(
        self,
        rainfall: Sequence[float],
        interval_seconds: float,
        index: pd.Index | None = None,
    ) -> pd.DataFrame:
        """Per-step storages and outflow components, plus runoff in m^3/s."""
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        frame = pd.DataFrame(list(self._steps(rainfall)), columns=TankStep._fields, index=index)
        frame.insert(0, "rainfall", np.asarray(rainfall, dtype=float))
        frame["runoff_cms"] = self.depth_to_flow(frame["runoff_mm"].to_numpy(), interval_seconds)
        return frame


def simulate_runoff(
    rainfall: Sequence[float], params: TankParameters | Mapping[str, float], interval_seconds: float
) -> np.ndarray:
    if not isinstance(params, TankParameters):
        params = TankParameters(**params)
    return TankModel(params).run(rainfall, interval_seconds)


__all__ = [
    "CALIBRATED_PARAMETERS",
    "TankParameters",
    "TankStep",
    "TankModel",
    "proportional_outflows",
    "simulate_runoff",
]

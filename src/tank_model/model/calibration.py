"""Automatic calibration of the tank model against observed runoff."""
from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from ..config import CalibrationConfig
from .metrics import nse
from .objective import ObjectiveFunction
from .rprop import OptimizationResult, ProgressRecord, RpropOptimizer, RpropOptions
from .tank import TankParameters

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationRecord:
    iteration: int
    objective: float
    nse: float
    change: float
    parameters: Mapping[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, float]:
        return {
            "iteration": self.iteration,
            "objective": self.objective,
            "nse": self.nse,
            "change": self.change,
            **self.parameters,
        }


@dataclass
class CalibrationResult:
    parameters: TankParameters
    optimization: OptimizationResult
    history: List[CalibrationRecord]
    metric: str

    def history_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame([record.to_dict() for record in self.history])
        if not frame.empty:
            frame = frame.set_index("iteration")
        return frame


class CalibrationDriver:
    """Calibrates the tank model with RPROP and keeps a per-iteration history.

    All inputs are passed in explicitly; the driver holds no module level
    state. It is not reentrant: one calibration at a time per instance.
    """

    def __init__(
        self,
        rainfall: Sequence[float],
        observed: Sequence[float],
        parameters: TankParameters,
        config: CalibrationConfig,
        bounds: Mapping[str, Tuple[float, float]] | None = None,
        interval_seconds: float = 3600.0,
    ) -> None:
        self.parameters = parameters
        self.config = config
        self.bounds = {**TankParameters.bounds(), **(bounds or {})}
        missing = [name for name in config.parameters if name not in self.bounds]
        if missing:
            raise ValueError(f"No bounds defined for parameters {missing}")
        self.objective = ObjectiveFunction(
            rainfall,
            observed,
            base_parameters=parameters,
            interval_seconds=interval_seconds,
            metric=config.objective,
            parameter_names=config.parameters,
        )
        self._running = False

    @property
    def parameter_names(self) -> Tuple[str, ...]:
        return self.objective.parameter_names

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        if self._running:
            raise RuntimeError("A calibration run is already in progress")
        self._running = True
        try:
            yield
        finally:
            self._running = False

    def _prepare(
        self,
        history: List[CalibrationRecord],
        progress: Optional[Callable[[CalibrationRecord], None]],
        cancel_event: Optional[threading.Event],
    ) -> Tuple[RpropOptimizer, np.ndarray, RpropOptions]:
        names = self.parameter_names
        lower = [self.bounds[name][0] for name in names]
        upper = [self.bounds[name][1] for name in names]
        optimizer = RpropOptimizer(self.objective, lower, upper, settings=self.config.rprop)

        def on_progress(record: ProgressRecord) -> None:
            simulated = self.objective.simulate(record.parameters)
            with np.errstate(all="ignore"):
                current_nse = nse(self.objective.observed, simulated)
            entry = CalibrationRecord(
                iteration=record.iteration,
                objective=record.objective,
                nse=current_nse,
                change=record.change,
                parameters={name: float(v) for name, v in zip(names, record.parameters)},
            )
            history.append(entry)
            if progress is not None:
                progress(entry)

        options = self.config.options(progress_callback=on_progress, cancel_event=cancel_event)
        initial = self.parameters.to_vector(names)
        LOGGER.info(
            "Calibrating %d parameters with objective %s (max %d iterations)",
            len(names),
            self.objective.metric,
            self.config.max_iterations,
        )
        return optimizer, initial, options

    def _finish(self, result: OptimizationResult, history: List[CalibrationRecord]) -> CalibrationResult:
        calibrated = self.objective.parameters_for(result.parameters)
        LOGGER.info(
            "Calibration stopped (%s) after %d iterations, objective %.6g, %d model runs",
            result.termination_reason,
            result.iterations,
            result.objective,
            self.objective.evaluations,
        )
        return CalibrationResult(
            parameters=calibrated,
            optimization=result,
            history=history,
            metric=self.objective.metric,
        )

    def calibrate(
        self,
        progress: Optional[Callable[[CalibrationRecord], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CalibrationResult:
        history: List[CalibrationRecord] = []
        with self._exclusive():
            optimizer, initial, options = self._prepare(history, progress, cancel_event)
            result = optimizer.run(initial, options)
        return self._finish(result, history)

    async def calibrate_async(
        self,
        progress: Optional[Callable[[CalibrationRecord], None]] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CalibrationResult:
        history: List[CalibrationRecord] = []
        with self._exclusive():
            optimizer, initial, options = self._prepare(history, progress, cancel_event)
            result = await optimizer.run_async(initial, options)
        return self._finish(result, history)


__all__ = ["CalibrationDriver", "CalibrationRecord", "CalibrationResult"]

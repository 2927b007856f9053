"""Resilient backpropagation (RPROP) search for box-constrained calibration.

The optimizer minimises an arbitrary scalar objective of an engineering-unit
parameter vector. Internally every dimension is mapped onto [0, 1] through its
bounds, partial derivatives are estimated with one-sided finite differences
and each dimension keeps its own step size, which grows while the sign of its
derivative is stable and shrinks when the sign flips::

    sign(g_prev * g) > 0  ->  step = min(step * acceleration, step_max)
    sign(g_prev * g) < 0  ->  step = max(step * deceleration, step_min), g = 0
    x = clip(x - sign(g) * step, 0, 1)

Only the sign of the derivative enters the update, so objectives with very
different scales behave alike.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Generator, Optional, Sequence

import numpy as np

LOGGER = logging.getLogger(__name__)

MAX_ITERATIONS = "max-iterations"
OBJECTIVE_THRESHOLD = "objective-threshold"
CONVERGED = "converged"
CANCELLED = "cancelled"

ZERO_RANGE = 1e-9


@dataclass(frozen=True)
class RpropSettings:
    """Tuning knobs of the step-size adaptation."""

    acceleration_factor: float = 1.2
    deceleration_factor: float = 0.5
    step_max: float = 50.0
    step_min: float = 1e-6
    gradient_epsilon: float = 1e-5

    def __post_init__(self) -> None:
        if self.acceleration_factor <= 1.0:
            raise ValueError("acceleration_factor must be greater than 1")
        if not 0.0 < self.deceleration_factor < 1.0:
            raise ValueError("deceleration_factor must lie in (0, 1)")
        if not 0.0 < self.step_min <= self.step_max:
            raise ValueError("step bounds must satisfy 0 < step_min <= step_max")
        if self.gradient_epsilon <= 0.0:
            raise ValueError("gradient_epsilon must be positive")


@dataclass(frozen=True)
class ProgressRecord:
    iteration: int
    parameters: np.ndarray
    objective: float
    change: float
    rejected: bool = False


@dataclass
class RpropOptions:
    initial_step: float = 0.1
    max_iterations: int = 100
    min_objective: float = 1e-6
    min_objective_change: float = 1e-7
    progress_callback: Optional[Callable[[ProgressRecord], None]] = None
    cancel_event: Optional[threading.Event] = None


@dataclass
class OptimizationResult:
    parameters: np.ndarray
    objective: float
    iterations: int
    termination_reason: str


def _difference(f_center: float, f_probe: float, epsilon: float) -> float:
    """Slope from the centre towards the probe; infinite losses count as uphill."""
    center_ok = np.isfinite(f_center)
    probe_ok = np.isfinite(f_probe)
    if center_ok and probe_ok:
        return (f_probe - f_center) / epsilon
    if center_ok:
        return float("inf")
    if probe_ok:
        return float("-inf")
    return 0.0


class RpropOptimizer:
    """Sign-based adaptive-step minimiser over a bounded parameter box.

    The box is fixed at construction, so one optimizer serves one calibration;
    ``run`` and ``run_async`` only take the starting point and the options.
    The returned ``OptimizationResult`` carries the final parameters (in
    engineering units), the final objective, the number of completed
    iterations and the termination reason.
    """

    def __init__(
        self,
        objective: Callable[[np.ndarray], float],
        lower: Sequence[float],
        upper: Sequence[float],
        settings: RpropSettings | None = None,
    ) -> None:
        self.objective = objective
        self.lower = np.asarray(lower, dtype=float)
        self.upper = np.asarray(upper, dtype=float)
        if self.lower.shape != self.upper.shape or self.lower.ndim != 1:
            raise ValueError("lower and upper bounds must be 1-D sequences of equal length")
        if np.any(self.lower > self.upper):
            raise ValueError("every lower bound must not exceed its upper bound")
        self.span = self.upper - self.lower
        self.pinned = np.abs(self.span) <= ZERO_RANGE
        self.settings = settings or RpropSettings()

    @property
    def n_params(self) -> int:
        return self.lower.size

    def normalize(self, values: Sequence[float]) -> np.ndarray:
        values = np.asarray(values, dtype=float)
        if values.shape != self.lower.shape:
            raise ValueError(f"expected {self.n_params} parameters, got {values.size}")
        span = np.where(self.pinned, 1.0, self.span)
        return np.where(self.pinned, 0.5, (values - self.lower) / span)

    def unnormalize(self, x: np.ndarray) -> np.ndarray:
        return self.lower + x * self.span

    def evaluate(self, x: np.ndarray) -> float:
        value = float(self.objective(self.unnormalize(x)))
        return value if not np.isnan(value) else float("inf")

    def gradient(self, x: np.ndarray, f_x: float) -> np.ndarray:
        """One-sided finite-difference gradient in normalised space.

        The probe steps backwards when a forward step would leave [0, 1].
        Pinned dimensions get a zero derivative.
        """
        epsilon = self.settings.gradient_epsilon
        grad = np.zeros(self.n_params)
        for i in np.flatnonzero(~self.pinned):
            probe = x.copy()
            if x[i] + epsilon > 1.0:
                probe[i] -= epsilon
                direction = -1.0
            else:
                probe[i] += epsilon
                direction = 1.0
            grad[i] = direction * _difference(f_x, self.evaluate(probe), epsilon)
        return grad

    def _search(
        self, initial: Sequence[float], options: RpropOptions
    ) -> Generator[ProgressRecord, None, OptimizationResult]:
        if options.initial_step <= 0:
            raise ValueError("initial_step must be positive")
        if options.max_iterations < 0:
            raise ValueError("max_iterations must not be negative")
        s = self.settings

        x = np.clip(self.normalize(initial), 0.0, 1.0)
        steps = np.full(self.n_params, float(options.initial_step))
        g_prev = np.zeros(self.n_params)
        f_current = self.evaluate(x)
        reason = MAX_ITERATIONS
        iterations = 0
        LOGGER.info(
            "Starting RPROP with %d parameters (%d pinned), initial objective %.6g",
            self.n_params,
            int(self.pinned.sum()),
            f_current,
        )

        for iteration in range(1, options.max_iterations + 1):
            g = self.gradient(x, f_current)
            sign_change = np.sign(g_prev) * np.sign(g)
            steps = np.where(sign_change > 0, np.minimum(steps * s.acceleration_factor, s.step_max), steps)
            steps = np.where(sign_change < 0, np.maximum(steps * s.deceleration_factor, s.step_min), steps)
            g = np.where(sign_change < 0, 0.0, g)

            candidate = np.clip(x - np.sign(g) * steps, 0.0, 1.0)
            f_candidate = self.evaluate(candidate)
            rejected = np.isfinite(f_current) and not np.isfinite(f_candidate)
            if rejected:
                steps = np.maximum(steps * s.deceleration_factor, s.step_min)
                g = np.zeros(self.n_params)
                change = 0.0
            else:
                if np.isfinite(f_current) and np.isfinite(f_candidate):
                    change = abs(f_candidate - f_current)
                else:
                    change = float("inf")
                x = candidate
                f_current = f_candidate
            g_prev = g
            iterations = iteration

            LOGGER.debug(
                "Iteration %d: objective=%.6g change=%.3g%s",
                iteration,
                f_current,
                change,
                " (step rejected)" if rejected else "",
            )
            yield ProgressRecord(
                iteration=iteration,
                parameters=self.unnormalize(x),
                objective=f_current,
                change=change,
                rejected=bool(rejected),
            )

            if options.cancel_event is not None and options.cancel_event.is_set():
                reason = CANCELLED
                break
            if f_current < options.min_objective:
                reason = OBJECTIVE_THRESHOLD
                break
            if not rejected and iteration > 1 and change < options.min_objective_change:
                reason = CONVERGED
                break

        LOGGER.info(
            "RPROP finished after %d iterations (%s), objective %.6g",
            iterations,
            reason,
            f_current,
        )
        return OptimizationResult(
            parameters=self.unnormalize(x),
            objective=f_current,
            iterations=iterations,
            termination_reason=reason,
        )

    def run(self, initial: Sequence[float], options: RpropOptions | None = None) -> OptimizationResult:
        """Run the search to completion on the calling thread."""
        options = options or RpropOptions()
        search = self._search(initial, options)
        while True:
            try:
                record = next(search)
            except StopIteration as stop:
                return stop.value
            if options.progress_callback is not None:
                options.progress_callback(record)

    async def run_async(
        self, initial: Sequence[float], options: RpropOptions | None = None
    ) -> OptimizationResult:
        """Like :meth:`run`, but hands control back to the event loop before
        every progress callback so a host application stays responsive."""
        options = options or RpropOptions()
        search = self._search(initial, options)
        while True:
            try:
                record = next(search)
            except StopIteration as stop:
                return stop.value
            if options.progress_callback is not None:
                await asyncio.sleep(0)
                options.progress_callback(record)


__all__ = [
    "CANCELLED",
    "CONVERGED",
    "MAX_ITERATIONS",
    "OBJECTIVE_THRESHOLD",
    "OptimizationResult",
    "ProgressRecord",
    "RpropOptimizer",
    "RpropOptions",
    "RpropSettings",
]

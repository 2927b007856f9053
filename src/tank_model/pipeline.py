"""End-to-end calibration workflow: load data, calibrate, simulate, export."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Optional

import pandas as pd

from .config import ProjectConfig
from .data.loader import align_series, read_station_series
from .model.calibration import CalibrationDriver, CalibrationRecord, CalibrationResult
from .model.metrics import FitStatistics, fit_statistics
from .model.tank import TankModel, TankParameters
from .utils.progress import ProgressBar

LOGGER = logging.getLogger(__name__)


class CalibrationPipeline:
    """Coordinates data preparation, model calibration and simulation."""

    def __init__(self, config: str | Path | ProjectConfig) -> None:
        self.config = config if isinstance(config, ProjectConfig) else ProjectConfig.load(config)
        self.series = self._load_series()
        LOGGER.info(
            "Loaded %d time steps for %s (%s)",
            len(self.series),
            self.config.basin.name,
            self.config.basin.id,
        )

    def _load_series(self) -> pd.DataFrame:
        rainfall = read_station_series(self.config.data.rainfall, name="rainfall")
        runoff = read_station_series(self.config.data.runoff, name="runoff")
        return align_series(rainfall, runoff, self.config.time_interval_seconds)

    @property
    def rainfall(self) -> pd.Series:
        return self.series["rainfall"]

    @property
    def observed(self) -> pd.Series:
        return self.series["runoff"]

    def calibrate(self, show_progress: bool = True) -> CalibrationResult:
        calibration = self.config.calibration
        driver = CalibrationDriver(
            self.rainfall.to_numpy(),
            self.observed.to_numpy(),
            parameters=self.config.parameters,
            config=calibration,
            bounds=self.config.bounds,
            interval_seconds=self.config.time_interval_seconds,
        )
        printer: Optional[ProgressBar] = None
        if show_progress and calibration.max_iterations > 0:
            printer = ProgressBar(calibration.max_iterations, description="Calibrating")

        def progress_cb(record: CalibrationRecord) -> None:
            if printer is not None:
                printer.update(
                    record.iteration,
                    extra_message=f"{calibration.objective}: {record.objective:.4e} NSE: {record.nse:.3f}",
                )

        result = driver.calibrate(progress=progress_cb)
        if printer is not None:
            printer.finish(f"{result.optimization.termination_reason} after {result.optimization.iterations} iterations")
        return result

    def simulate(self, params: TankParameters) -> pd.DataFrame:
        model = TankModel(params)
        trace = model.trace(self.rainfall.to_numpy(), self.config.time_interval_seconds, index=self.series.index)
        trace.insert(1, "observed_runoff", self.observed.to_numpy())
        return trace

    def evaluate(self, simulation: pd.DataFrame, params: TankParameters) -> FitStatistics:
        return fit_statistics(
            self.observed.to_numpy(),
            simulation["runoff_cms"].to_numpy(),
            interval_seconds=self.config.time_interval_seconds,
            rainfall=self.rainfall.to_numpy(),
            area_km2=params.area_km2,
        )

    def export_results(
        self,
        result: CalibrationResult,
        simulation: pd.DataFrame,
        statistics: FitStatistics,
    ) -> Dict[str, Path]:
        output_dir = Path(self.config.output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        paths = {
            "parameters": output_dir / "calibrated_parameters.csv",
            "simulation": output_dir / "simulation.csv",
            "history": output_dir / "calibration_history.csv",
            "statistics": output_dir / "fit_statistics.csv",
        }
        params = pd.Series(result.parameters.to_dict(), name="value")
        params.index.name = "parameter"
        params.to_csv(paths["parameters"], header=True)
        simulation.to_csv(paths["simulation"])
        result.history_frame().to_csv(paths["history"])
        stats = pd.Series(statistics.to_dict(), name="value")
        stats.index.name = "statistic"
        stats.to_csv(paths["statistics"], header=True)
        for key, path in paths.items():
            LOGGER.info("Saved %s to %s", key, path)
        return paths

    def run(self, show_progress: bool = True) -> FitStatistics:
        result = self.calibrate(show_progress=show_progress)
        simulation = self.simulate(result.parameters)
        statistics = self.evaluate(simulation, result.parameters)
        self.export_results(result, simulation, statistics)
        return statistics


__all__ = ["CalibrationPipeline"]

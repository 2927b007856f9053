"""Configuration management for the tank model calibration project."""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .model.objective import resolve_metric
from .model.rprop import RpropOptions, RpropSettings
from .model.tank import CALIBRATED_PARAMETERS, TankParameters


@dataclass
class BasinConfig:
    """Identity and size of the catchment."""

    id: str = "RSHME"
    code: str = "05"
    name: str = "Shimen Reservoir catchment"
    area_km2: float = 765.0

    @staticmethod
    def from_dict(raw: Mapping[str, Any]) -> "BasinConfig":
        return BasinConfig(
            id=str(raw.get("id", "RSHME")),
            code=str(raw.get("code", "05")),
            name=str(raw.get("name", "Shimen Reservoir catchment")),
            area_km2=float(raw.get("area_km2", 765.0)),
        )


@dataclass
class DataConfig:
    """Locations of the rainfall and runoff station files."""

    rainfall: Path
    runoff: Path

    @staticmethod
    def from_dict(root: Path, raw: Mapping[str, str]) -> "DataConfig":
        paths = {}
        for key in ("rainfall", "runoff"):
            if key not in raw:
                raise ValueError(f"Data section must define '{key}'")
            path = Path(raw[key]).expanduser()
            if not path.is_absolute():
                path = root / path
            paths[key] = path
        return DataConfig(**paths)


@dataclass
class CalibrationConfig:
    objective: str = "RMSE"
    max_iterations: int = 100
    initial_step: float = 0.1
    min_objective: float = 1e-6
    min_objective_change: float = 1e-7
    parameters: List[str] = field(default_factory=lambda: list(CALIBRATED_PARAMETERS))
    rprop: RpropSettings = field(default_factory=RpropSettings)

    @staticmethod
    def from_dict(raw: Mapping[str, Any]) -> "CalibrationConfig":
        names = list(raw.get("parameters", CALIBRATED_PARAMETERS))
        unknown = sorted(set(names) - set(CALIBRATED_PARAMETERS))
        if unknown:
            raise ValueError(f"Parameters cannot be calibrated: {unknown}")
        rprop_raw = dict(raw.get("rprop") or {})
        known = {f.name for f in fields(RpropSettings)}
        extra = sorted(set(rprop_raw) - known)
        if extra:
            raise ValueError(f"Unknown RPROP settings: {extra}")
        return CalibrationConfig(
            objective=resolve_metric(str(raw.get("objective", "RMSE"))),
            max_iterations=int(raw.get("max_iterations", 100)),
            initial_step=float(raw.get("initial_step", 0.1)),
            min_objective=float(raw.get("min_objective", 1e-6)),
            min_objective_change=float(raw.get("min_objective_change", 1e-7)),
            parameters=names,
            rprop=RpropSettings(**{k: float(v) for k, v in rprop_raw.items()}),
        )

    def options(self, **overrides: Any) -> RpropOptions:
        return RpropOptions(
            initial_step=self.initial_step,
            max_iterations=self.max_iterations,
            min_objective=self.min_objective,
            min_objective_change=self.min_objective_change,
            **overrides,
        )


def parse_parameters(raw: Mapping[str, Any], area_km2: float) -> TankParameters:
    known = {f.name for f in fields(TankParameters)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"Unknown tank parameters: {unknown}")
    values = {"area_km2": area_km2, **{k: float(v) for k, v in raw.items()}}
    return TankParameters(**values)


def parse_bounds(raw: Mapping[str, Any]) -> Dict[str, Tuple[float, float]]:
    bounds = TankParameters.bounds()
    for name, pair in raw.items():
        if name not in bounds:
            raise ValueError(f"Unknown parameter in bounds: '{name}'")
        low, high = (float(v) for v in pair)
        if low > high:
            raise ValueError(f"Lower bound exceeds upper bound for '{name}': [{low}, {high}]")
        bounds[name] = (low, high)
    return bounds


@dataclass
class ProjectConfig:
    """Top level configuration."""

    basin: BasinConfig
    data: DataConfig
    parameters: TankParameters
    bounds: Dict[str, Tuple[float, float]]
    calibration: CalibrationConfig
    output_dir: Path
    time_interval_seconds: float = 3600.0
    source: Optional[Path] = None

    @staticmethod
    def load(path: str | Path) -> "ProjectConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")
        with config_path.open("r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}
        return ProjectConfig.from_dict(raw, root=config_path.parent, source=config_path)

    @staticmethod
    def from_dict(raw: Mapping[str, Any], root: Path, source: Optional[Path] = None) -> "ProjectConfig":
        basin = BasinConfig.from_dict(raw.get("basin", {}))
        if "data" not in raw:
            raise ValueError("Configuration must define a 'data' section")
        interval = float(raw.get("time_interval_seconds", 3600.0))
        if interval <= 0:
            raise ValueError("time_interval_seconds must be positive")
        output_dir = Path(raw.get("output_dir", "outputs"))
        if not output_dir.is_absolute():
            output_dir = root / output_dir
        output_dir.mkdir(parents=True, exist_ok=True)
        return ProjectConfig(
            basin=basin,
            data=DataConfig.from_dict(root, raw["data"]),
            parameters=parse_parameters(raw.get("parameters", {}), basin.area_km2),
            bounds=parse_bounds(raw.get("bounds", {})),
            calibration=CalibrationConfig.from_dict(raw.get("calibration", {})),
            output_dir=output_dir,
            time_interval_seconds=interval,
            source=source,
        )


__all__ = [
    "BasinConfig",
    "CalibrationConfig",
    "DataConfig",
    "ProjectConfig",
    "parse_bounds",
    "parse_parameters",
]

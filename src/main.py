"""Command line entry point for tank model calibration."""
from __future__ import annotations

import argparse
import dataclasses
import logging
from pathlib import Path
from typing import List, Optional

from tank_model.config import ProjectConfig
from tank_model.model.objective import METRICS, resolve_metric
from tank_model.pipeline import CalibrationPipeline
from tank_model.utils.logging import configure_logging

LOGGER = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Calibrate the two-tank rainfall-runoff model with RPROP")
    parser.add_argument("config", type=Path, help="Path to YAML configuration file")
    parser.add_argument("--objective", choices=sorted(METRICS), type=resolve_metric, help="Objective metric")
    parser.add_argument("--max-iterations", type=int, help="Maximum number of RPROP iterations")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", help="Optional log file path")
    parser.add_argument("--no-progress", action="store_true", help="Disable the console progress bar")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    config = ProjectConfig.load(args.config)
    overrides = {}
    if args.objective:
        overrides["objective"] = args.objective
    if args.max_iterations is not None:
        overrides["max_iterations"] = args.max_iterations
    if overrides:
        config.calibration = dataclasses.replace(config.calibration, **overrides)
    LOGGER.info("Loaded configuration for %s", config.basin.name)

    statistics = CalibrationPipeline(config).run(show_progress=not args.no_progress)
    print(", ".join(f"{k}={v:.3f}" for k, v in statistics.to_dict().items()))


if __name__ == "__main__":
    main()

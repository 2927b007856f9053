"""Loading of rainfall and runoff station records."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

import pandas as pd

LOGGER = logging.getLogger(__name__)

STATION_COLUMNS = ["station", "time", "value"]
TIME_ALIASES = ("time", "datetime", "date", "obstime", "timestamp")
VALUE_ALIASES = ("value", "rain", "rainfall", "runoff", "flow", "discharge")


def read_station_series(path: str | Path, name: Optional[str] = None) -> pd.Series:
    """Read one station record into a time-indexed series.

    ``.txt`` and ``.dat`` files hold whitespace separated lines such as
    ``RSHME 2024-05-01T00:00 43.31``; lines starting with ``;`` are comments.
    ``.csv`` files need a time column and a value column.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Dataset not found: {path}")
    LOGGER.info("Loading station series %s", path)
    suffix = path.suffix.lower()
    if suffix in {".txt", ".dat"}:
        df = pd.read_csv(
            path,
            sep=r"\s+",
            comment=";",
            header=None,
            names=STATION_COLUMNS,
            usecols=[0, 1, 2],
            engine="python",
        )
        time_col, value_col = "time", "value"
    elif suffix == ".csv":
        df = pd.read_csv(path)
        time_col = _find_column(df.columns, TIME_ALIASES)
        value_col = _find_column([c for c in df.columns if c != time_col], VALUE_ALIASES)
        if time_col is None or value_col is None:
            raise KeyError(f"Could not identify time/value columns in {path}: {list(df.columns)}")
    else:
        raise ValueError(f"Unsupported station file: {path}")

    times = pd.to_datetime(df[time_col].astype(str).str.replace("T", " ", regex=False))
    values = pd.to_numeric(df[value_col], errors="coerce")
    series = pd.Series(values.to_numpy(dtype=float), index=pd.DatetimeIndex(times), name=name or path.stem)
    series = series[~series.index.duplicated(keep="last")].sort_index()
    return series


def align_series(rainfall: pd.Series, runoff: pd.Series, interval_seconds: float) -> pd.DataFrame:
    """Put rainfall and runoff on one regular time axis.

    Missing rainfall becomes 0 and missing or unreadable runoff becomes -1,
    the flag used for invalid observations.
    """
    if rainfall.empty or runoff.empty:
        raise ValueError("Rainfall and runoff series must not be empty")
    start = min(rainfall.index.min(), runoff.index.min())
    end = max(rainfall.index.max(), runoff.index.max())
    index = pd.date_range(start, end, freq=pd.to_timedelta(interval_seconds, unit="s"))
    frame = pd.DataFrame(
        {
            "rainfall": rainfall.reindex(index).fillna(0.0).clip(lower=0.0),
            "runoff": runoff.reindex(index).fillna(-1.0),
        },
        index=index,
    )
    frame.index.name = "time"
    dropped = len(rainfall.index.difference(index)) + len(runoff.index.difference(index))
    if dropped:
        LOGGER.warning("Dropped %d records that fall between the %gs time steps", dropped, interval_seconds)
    return frame


def _find_column(columns: Iterable[str], aliases: Iterable[str]) -> Optional[str]:
    normalized = {str(col).lower(): col for col in columns}
    for alias in aliases:
        if alias in normalized:
            return normalized[alias]
    for alias in aliases:
        for key, original in normalized.items():
            if alias in key:
                return original
    return None


__all__ = ["align_series", "read_station_series"]

"""Console progress bar for calibration runs."""

from __future__ import annotations

import sys
import time
from dataclasses import dataclass, field
from typing import Optional, TextIO


@dataclass
class ProgressState:
    total: int
    current: int = 0
    start_time: float = field(default_factory=time.time)
    bar_length: int = 40
    finished: bool = False


class ProgressBar:
    """Single-line progress bar with elapsed time and ETA.

    Calibrations may stop before ``total`` iterations, so the bar is driven by
    absolute positions and closed explicitly with :meth:`finish`.
    """

    def __init__(
        self,
        total: int,
        description: str = "",
        bar_length: int = 40,
        stream: Optional[TextIO] = None,
    ) -> None:
        if total <= 0:
            raise ValueError("total must be positive")
        self.state = ProgressState(total=total, bar_length=bar_length)
        self.description = description
        self.stream = stream or sys.stdout
        self._last_len = 0

    def update(self, current: int, extra_message: Optional[str] = None) -> None:
        state = self.state
        state.current = min(max(current, 0), state.total)
        elapsed = time.time() - state.start_time
        progress = state.current / state.total
        filled = int(state.bar_length * progress)
        bar = "#" * filled + "-" * (state.bar_length - filled)
        eta = _format_duration(elapsed / progress - elapsed) if progress > 0 else "NA"
        output = (
            f"\r{self.description} |{bar}| {progress * 100:6.2f}% "
            f"Elapsed: {_format_duration(elapsed)} ETA: {eta} {extra_message or ''}"
        )
        padding = " " * max(self._last_len - len(output), 0)
        self.stream.write(output + padding)
        self.stream.flush()
        self._last_len = len(output)

    def finish(self, message: Optional[str] = None) -> None:
        if self.state.finished:
            return
        if message:
            self.stream.write(f"\r{self.description} {message}".ljust(self._last_len))
        self.stream.write("\n")
        self.stream.flush()
        self.state.finished = True


def _format_duration(seconds: float) -> str:
    if seconds != seconds or seconds == float("inf"):
        return "NA"
    seconds = max(0.0, seconds)
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60
    if hours > 0:
        return f"{hours:d}h {minutes:02d}m {secs:04.1f}s"
    if minutes > 0:
        return f"{minutes:d}m {secs:04.1f}s"
    return f"{secs:0.2f}s"


__all__ = ["ProgressBar"]

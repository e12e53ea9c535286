"""
Progress Tracker - Dual percentages, smoothed speed and ETA for the copy engine

Pure computation: the tracker owns the raw counters and the speed estimate,
and hands out immutable ProgressSnapshot objects. It never sleeps, never
does I/O and never looks at the cancel token.
"""

import time
from datetime import timedelta
from typing import Callable, Optional

from core.models import CopyState, ProgressSnapshot, SpeedEstimate
from core.settings import EMA_ALPHA, MIN_ETA_SPEED, MIN_SAMPLE_SECONDS

# Largest ETA we can hand out without timedelta overflowing
MAX_ETA_SECONDS = timedelta.max.total_seconds() - 1


def _clamp_percent(value) -> int:
    return max(0, min(100, int(value)))


def files_percent(files_done: int, total_files: int,
                  current_done: int = 0, current_total: int = 0) -> int:
    """File-count based percent, counting the current file fractionally"""
    if total_files <= 0:
        return 0
    # A file that grew after the scan still counts as at most one file
    fraction = min(1.0, current_done / current_total) if current_total > 0 else 0.0
    return _clamp_percent(round((files_done + fraction) / total_files * 100))


def bytes_percent(bytes_done: int, total_bytes: int) -> int:
    if total_bytes <= 0:
        return 0
    return _clamp_percent(round(bytes_done * 100 / total_bytes))


def file_percent(done: int, total: int) -> int:
    if total <= 0:
        return 0
    return _clamp_percent(round(done * 100 / total))


def next_ema(previous: float, instantaneous: float, alpha: float = EMA_ALPHA,
             first_sample: bool = False) -> float:
    """One EMA step; the first sample seeds the average directly"""
    if first_sample:
        return instantaneous
    return alpha * instantaneous + (1 - alpha) * previous


def estimate_eta(remaining_bytes: int, ema_bytes_per_second: float) -> Optional[timedelta]:
    """None while the speed is too low to give a meaningful estimate"""
    if ema_bytes_per_second < MIN_ETA_SPEED:
        return None
    seconds = max(0, remaining_bytes) / ema_bytes_per_second
    return timedelta(seconds=min(seconds, MAX_ETA_SECONDS))


def format_bytes(num_bytes) -> str:
    """1536 -> '1.5 KB'"""
    value = float(num_bytes)
    suffixes = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while value >= 1024 and i < len(suffixes) - 1:
        value /= 1024
        i += 1
    return f"{value:.1f} {suffixes[i]}"


def format_eta(eta: Optional[timedelta]) -> str:
    if eta is None:
        return "-"
    total = int(eta.total_seconds())
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


class ProgressTracker:
    """Counters plus EMA speed for one copy run"""

    def __init__(self, total_files: int, total_bytes: int,
                 clock: Callable[[], float] = time.monotonic,
                 alpha: float = EMA_ALPHA):
        self.clock = clock
        self.alpha = alpha
        self.state = CopyState(total_files=total_files, total_bytes_overall=total_bytes)
        self._speed = SpeedEstimate()
        self._samples = 0
        self._baseline_time = clock()
        self._in_file = False

    @property
    def speed(self) -> SpeedEstimate:
        return self._speed

    def start_file(self, relative_path: str, size_bytes: int):
        self.state.current_relative_path = relative_path
        self.state.current_file_bytes_done = 0
        self.state.current_file_bytes_total = size_bytes
        self._in_file = True

    def add_bytes(self, count: int):
        """Record a transferred chunk"""
        state = self.state
        state.current_file_bytes_done += count
        state.bytes_done_overall = min(state.bytes_done_overall + count, state.total_bytes_overall)

    def finish_file(self):
        state = self.state
        # A file that shrank after the scan must not leave overall bytes short
        shortfall = state.current_file_bytes_total - state.current_file_bytes_done
        if shortfall > 0:
            state.bytes_done_overall = min(state.bytes_done_overall + shortfall, state.total_bytes_overall)
        state.current_file_bytes_done = state.current_file_bytes_total
        state.files_done = min(state.files_done + 1, state.total_files)
        self._in_file = False

    def sample(self) -> SpeedEstimate:
        """Fold the bytes moved since the previous sample into the EMA"""
        now = self.clock()
        last_time = self._speed.last_sample_timestamp
        if last_time is None:
            last_time = self._baseline_time
        elapsed = max(MIN_SAMPLE_SECONDS, now - last_time)

        overall = self.state.bytes_done_overall
        delta = max(0, overall - self._speed.last_overall_bytes)
        instantaneous = delta / elapsed

        ema = next_ema(self._speed.ema_bytes_per_second, instantaneous,
                       self.alpha, first_sample=self._samples == 0)
        self._samples += 1
        self._speed = SpeedEstimate(
            ema_bytes_per_second=ema,
            last_sample_timestamp=now,
            last_overall_bytes=overall,
        )
        return self._speed

    def snapshot(self, stage: str = "Copying") -> ProgressSnapshot:
        state = self.state
        ema = self._speed.ema_bytes_per_second
        remaining = state.total_bytes_overall - state.bytes_done_overall
        return ProgressSnapshot(
            stage=stage,
            files_done=state.files_done,
            total_files=state.total_files,
            bytes_done=state.bytes_done_overall,
            total_bytes=state.total_bytes_overall,
            current_file=state.current_relative_path,
            current_file_bytes_done=state.current_file_bytes_done,
            current_file_bytes_total=state.current_file_bytes_total,
            # A finished file is already counted in files_done
            files_percent=files_percent(state.files_done, state.total_files,
                                        state.current_file_bytes_done if self._in_file else 0,
                                        state.current_file_bytes_total),
            bytes_percent=bytes_percent(state.bytes_done_overall, state.total_bytes_overall),
            current_file_percent=file_percent(state.current_file_bytes_done,
                                              state.current_file_bytes_total),
            speed_bytes_per_second=ema,
            eta=estimate_eta(remaining, ema),
        )

    def completed(self, stage: str = "Done") -> ProgressSnapshot:
        """Final snapshot of a successful run"""
        state = self.state
        return ProgressSnapshot(
            stage=stage,
            files_done=state.total_files,
            total_files=state.total_files,
            bytes_done=state.total_bytes_overall,
            total_bytes=state.total_bytes_overall,
            current_file=state.current_relative_path,
            current_file_bytes_done=state.current_file_bytes_total,
            current_file_bytes_total=state.current_file_bytes_total,
            files_percent=100,
            bytes_percent=100,
            current_file_percent=100,
            speed_bytes_per_second=self._speed.ema_bytes_per_second,
            eta=timedelta(0),
        )

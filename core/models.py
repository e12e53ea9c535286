"""
Rebuild Data Models
"""

import threading
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Optional, Tuple

from core.errors import RebuildError


class FileSystem(Enum):
    """Filesystems the target volume can be formatted to"""
    EXFAT = "exFAT"
    NTFS = "NTFS"
    FAT32 = "FAT32"

    @classmethod
    def parse(cls, text) -> 'FileSystem':
        """Normalize user input; anything unrecognised falls back to exFAT"""
        if isinstance(text, cls):
            return text
        wanted = (text or "").strip().lower()
        for fs in cls:
            if fs.value.lower() == wanted:
                return fs
        return cls.EXFAT


def normalize_drive_letter(drive: str) -> str:
    """'f', 'F:', 'F:\\' -> 'F'"""
    return (drive or "").strip().rstrip('\\/').rstrip(':').upper()


@dataclass(frozen=True)
class VolumeTarget:
    """The volume to format, fixed for the lifetime of a run"""
    drive_identifier: str
    filesystem: FileSystem
    label: str

    def __post_init__(self):
        object.__setattr__(self, 'drive_identifier', normalize_drive_letter(self.drive_identifier))
        object.__setattr__(self, 'filesystem', FileSystem.parse(self.filesystem))
        # The label ends up inside format.com / diskpart command lines
        if not self.label or any(c in self.label for c in '\'"`\r\n'):
            raise ValueError(f"Invalid volume label: {self.label!r}")

    @property
    def root(self) -> str:
        return f"{self.drive_identifier}:\\"


@dataclass(frozen=True)
class VolumeInfo:
    """Observable state of a mounted volume"""
    is_ready: bool
    label: str = ""
    total_bytes: int = 0
    free_bytes: int = 0
    file_system: str = ""


class FormatState(Enum):
    """Format pipeline states, in the only order they may be visited"""
    NOT_STARTED = 0
    PRIMARY_ATTEMPTED = 1
    VERIFYING = 2
    FALLBACK_ATTEMPTED = 3
    RE_VERIFYING = 4
    SUCCEEDED = 5
    FAILED = 6

    @property
    def is_terminal(self) -> bool:
        return self in (FormatState.SUCCEEDED, FormatState.FAILED)


_FORMAT_TRANSITIONS = {
    FormatState.NOT_STARTED: {FormatState.PRIMARY_ATTEMPTED, FormatState.FAILED},
    FormatState.PRIMARY_ATTEMPTED: {FormatState.VERIFYING, FormatState.FAILED},
    FormatState.VERIFYING: {FormatState.SUCCEEDED, FormatState.FALLBACK_ATTEMPTED, FormatState.FAILED},
    FormatState.FALLBACK_ATTEMPTED: {FormatState.RE_VERIFYING, FormatState.FAILED},
    FormatState.RE_VERIFYING: {FormatState.SUCCEEDED, FormatState.FAILED},
    FormatState.SUCCEEDED: set(),
    FormatState.FAILED: set(),
}


class FormatStateMachine:
    """Tracks FormatState and refuses regressions"""

    def __init__(self):
        self.state = FormatState.NOT_STARTED
        self.history = [FormatState.NOT_STARTED]

    def advance(self, new_state: FormatState):
        if new_state not in _FORMAT_TRANSITIONS[self.state]:
            raise ValueError(f"Illegal format state transition {self.state.name} -> {new_state.name}")
        self.state = new_state
        self.history.append(new_state)


@dataclass(frozen=True)
class ManifestEntry:
    """A single file scheduled for copying"""
    relative_path: str
    absolute_source_path: str
    size_bytes: int
    is_high_priority_extension: bool


@dataclass(frozen=True)
class Manifest:
    """Ordered, immutable list of files selected for a run"""
    source_root: str
    entries: Tuple[ManifestEntry, ...] = ()
    excluded_count: int = 0

    @property
    def total_files(self) -> int:
        return len(self.entries)

    @property
    def total_bytes(self) -> int:
        return sum(e.size_bytes for e in self.entries)

    def __len__(self):
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass
class CopyState:
    """Raw counters, mutated only by the worker doing the copy"""
    total_files: int = 0
    total_bytes_overall: int = 0
    files_done: int = 0
    bytes_done_overall: int = 0
    current_file_bytes_done: int = 0
    current_file_bytes_total: int = 0
    current_relative_path: str = ""


@dataclass(frozen=True)
class SpeedEstimate:
    """Smoothed throughput as last sampled"""
    ema_bytes_per_second: float = 0.0
    last_sample_timestamp: Optional[float] = None
    last_overall_bytes: int = 0


@dataclass(frozen=True)
class ProgressSnapshot:
    """Immutable view of copy progress handed to consumers"""
    stage: str = ""
    files_done: int = 0
    total_files: int = 0
    bytes_done: int = 0
    total_bytes: int = 0
    current_file: str = ""
    current_file_bytes_done: int = 0
    current_file_bytes_total: int = 0
    files_percent: int = 0
    bytes_percent: int = 0
    current_file_percent: int = 0
    speed_bytes_per_second: float = 0.0
    eta: Optional[timedelta] = None


class RunStatus(Enum):
    """How a stage or a whole run ended"""
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    NOTHING_TO_DO = "nothing_to_do"


@dataclass(frozen=True)
class StageResult:
    """Outcome of the format stage or the copy stage"""
    status: RunStatus
    error: Optional[RebuildError] = None

    @classmethod
    def ok(cls) -> 'StageResult':
        return cls(RunStatus.SUCCEEDED)

    @classmethod
    def failed(cls, error: RebuildError) -> 'StageResult':
        return cls(RunStatus.FAILED, error)

    @classmethod
    def cancelled(cls) -> 'StageResult':
        return cls(RunStatus.CANCELLED)

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED


@dataclass(frozen=True)
class RunResult:
    """Terminal outcome of a complete rebuild run"""
    status: RunStatus
    error: Optional[Exception] = None
    snapshot: Optional[ProgressSnapshot] = None
    files_copied: int = 0
    bytes_copied: int = 0
    elapsed_seconds: float = 0.0
    format_state: FormatState = FormatState.NOT_STARTED


class CancelToken:
    """Cooperative cancellation flag shared by the worker and its consumer"""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self):
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        """Sleep up to timeout, waking early on cancel. Returns cancelled."""
        return self._event.wait(timeout)

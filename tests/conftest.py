"""
Shared fixtures: fake volumes, fake format backend, deterministic clock
"""

import os
import sys
import itertools

import pytest

# Project root on the path so `core` and `gui` import without installing
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.format_backend import FormatBackend, LaunchOutcome  # noqa: E402
from core.models import VolumeInfo  # noqa: E402


class FakeVolumes:
    """
    Volume lookup driven by a script of VolumeInfo results.
    The last entry repeats once the script runs out.
    """

    def __init__(self, infos=None, validate_error=None):
        self.infos = list(infos or [VolumeInfo(is_ready=True, label="OLD")])
        self.validate_error = validate_error
        self.calls = 0

    def get_volume_info(self, drive):
        info = self.infos[min(self.calls, len(self.infos) - 1)]
        self.calls += 1
        if isinstance(info, Exception):
            raise info
        return info

    def validate_destination(self, drive):
        if self.validate_error is not None:
            raise self.validate_error
        return drive.strip().rstrip(':').upper()


class FakeBackend(FormatBackend):
    """Records launches; optionally flips the volume label like a real format"""

    def __init__(self, volumes=None, primary_label=None, fallback_label=None,
                 primary_error=None, fallback_error=None):
        self.volumes = volumes
        self.primary_label = primary_label
        self.fallback_label = fallback_label
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        self.primary_calls = []
        self.fallback_calls = []

    def _apply(self, label):
        if label is not None and self.volumes is not None:
            self.volumes.infos = [VolumeInfo(is_ready=True, label=label)]
            self.volumes.calls = 0

    def format_primary(self, drive, filesystem, label):
        self.primary_calls.append((drive, filesystem, label))
        if self.primary_error is not None:
            raise self.primary_error
        self._apply(self.primary_label)
        return LaunchOutcome("primary", exit_code=0)

    def format_fallback(self, drive, filesystem, label):
        self.fallback_calls.append((drive, filesystem, label))
        if self.fallback_error is not None:
            raise self.fallback_error
        self._apply(self.fallback_label)
        return LaunchOutcome("fallback", exit_code=0)


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class StepClock:
    """Monotonic clock advancing a fixed step per call"""

    def __init__(self, step=1.0, start=0.0):
        self._counter = itertools.count()
        self.step = step
        self.start = start

    def __call__(self):
        return self.start + next(self._counter) * self.step


def write_file(path, size, fill=b"x"):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write((fill * size)[:size])
    return path


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def source_tree(tmp_path):
    """Small source folder with an image, nested files and an empty directory"""
    src = tmp_path / "source"
    write_file(str(src / "game.iso"), 3000, b"I")
    write_file(str(src / "readme.txt"), 100, b"R")
    write_file(str(src / "sub" / "deep" / "data.bin"), 1500, b"D")
    write_file(str(src / "sub" / "Thumbs.db"), 10, b"T")
    (src / "empty").mkdir()
    return src

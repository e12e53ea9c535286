"""
Tests for the end-to-end run sequencing
"""

import os
import queue

from conftest import FakeBackend, FakeVolumes, StepClock
from core.copy_engine import CopyEngine
from core.errors import DestinationInvalid, FormatVerificationFailed, ManifestScanFailed
from core.format_orchestrator import FormatOrchestrator
from core.models import (FormatState, ProgressSnapshot, RunResult, RunStatus, StageResult,
                         VolumeInfo)
from core.run_controller import RunController
from core.settings import RebuildOptions


class RecordingCopyEngine(CopyEngine):
    """Copies into a local folder instead of the drive root"""

    def __init__(self, dest_root, **kwargs):
        super().__init__(chunk_size=512, **kwargs)
        self.dest_root = dest_root
        self.calls = 0

    def copy(self, manifest, dest_root, cancel_token=None, on_progress=None):
        self.calls += 1
        return super().copy(manifest, self.dest_root, cancel_token, on_progress)


def drain(events):
    items = []
    while True:
        try:
            items.append(events.get_nowait())
        except queue.Empty:
            return items


def make_controller(source, volumes, backend, copy_engine, label="IODD"):
    orchestrator = FormatOrchestrator(backend, volumes, sleep=lambda s: None, cleaner=lambda root: None)
    return RunController(str(source), "F", RebuildOptions(label=label), volumes, orchestrator,
                         copy_engine=copy_engine)


def test_successful_run_publishes_final_snapshot(source_tree, tmp_path):
    dest = tmp_path / "dest"
    dest.mkdir()
    volumes = FakeVolumes()
    engine = RecordingCopyEngine(str(dest))
    controller = make_controller(source_tree, volumes, FakeBackend(volumes, primary_label="IODD"), engine)

    result = controller.run()

    assert result.status == RunStatus.SUCCEEDED
    assert result.format_state == FormatState.SUCCEEDED
    assert result.files_copied == 3
    assert result.snapshot.files_percent == 100
    assert result.snapshot.bytes_percent == 100
    assert os.path.isfile(dest / "game.iso")

    events = drain(controller.events)
    assert isinstance(events[-1], RunResult)
    stages = [e.stage for e in events if isinstance(e, ProgressSnapshot)]
    assert stages[:3] == ["Validating", "Formatting", "Scanning"]
    assert stages[-1] == "Done"


def test_format_failure_never_copies(source_tree, tmp_path):
    volumes = FakeVolumes([VolumeInfo(is_ready=True, label="OLD")])
    engine = RecordingCopyEngine(str(tmp_path))
    controller = make_controller(source_tree, volumes, FakeBackend(), engine)

    result = controller.run()

    assert result.status == RunStatus.FAILED
    assert isinstance(result.error, FormatVerificationFailed)
    assert result.format_state == FormatState.FAILED
    assert engine.calls == 0


def test_invalid_destination_stops_before_format(source_tree, tmp_path):
    volumes = FakeVolumes(validate_error=DestinationInvalid("Destination check", "F:", "drive not found"))
    backend = FakeBackend()
    controller = make_controller(source_tree, volumes, backend, RecordingCopyEngine(str(tmp_path)))

    result = controller.run()

    assert isinstance(result.error, DestinationInvalid)
    assert backend.primary_calls == []


def test_missing_source_stops_before_format(tmp_path):
    backend = FakeBackend()
    controller = make_controller(tmp_path / "missing", FakeVolumes(), backend,
                                 RecordingCopyEngine(str(tmp_path)))

    assert controller.run().status == RunStatus.FAILED
    assert backend.primary_calls == []


def test_empty_source_is_nothing_to_do(tmp_path):
    src = tmp_path / "src"
    src.mkdir()
    volumes = FakeVolumes()
    engine = RecordingCopyEngine(str(tmp_path))
    controller = make_controller(src, volumes, FakeBackend(volumes, primary_label="IODD"), engine)

    result = controller.run()

    assert result.status == RunStatus.NOTHING_TO_DO
    assert engine.calls == 0


def test_cancel_is_reported_as_cancelled(source_tree, tmp_path):
    volumes = FakeVolumes()
    engine = RecordingCopyEngine(str(tmp_path))
    controller = make_controller(source_tree, volumes, FakeBackend(volumes, primary_label="IODD"), engine)
    controller.cancel()

    result = controller.run()

    assert result.status == RunStatus.CANCELLED
    assert result.error is None
    assert engine.calls == 0


def test_unexpected_exception_becomes_failed(source_tree, tmp_path):
    class ExplodingEngine(RecordingCopyEngine):
        def copy(self, *args, **kwargs):
            raise RuntimeError("boom")

    volumes = FakeVolumes()
    controller = make_controller(source_tree, volumes, FakeBackend(volumes, primary_label="IODD"),
                                 ExplodingEngine(str(tmp_path)))

    result = controller.run()

    assert result.status == RunStatus.FAILED
    assert isinstance(result.error, RuntimeError)


def test_background_worker_delivers_result(source_tree, tmp_path):
    class InstantEngine(RecordingCopyEngine):
        def copy(self, *args, **kwargs):
            self.calls += 1
            return StageResult.ok()

    volumes = FakeVolumes()
    controller = make_controller(source_tree, volumes, FakeBackend(volumes, primary_label="IODD"),
                                 InstantEngine(str(tmp_path)))

    controller.start()
    controller.join(timeout=10)

    assert controller.result.status == RunStatus.SUCCEEDED
    assert isinstance(drain(controller.events)[-1], RunResult)


def test_cancel_while_verifying_format(source_tree, tmp_path):
    volumes = FakeVolumes([VolumeInfo(is_ready=True, label="OLD")])
    engine = RecordingCopyEngine(str(tmp_path))
    orchestrator = FormatOrchestrator(FakeBackend(), volumes, sleep=lambda s: controller.cancel(),
                                      cleaner=lambda root: None)
    controller = RunController(str(source_tree), "F", RebuildOptions(), volumes, orchestrator,
                               copy_engine=engine)

    result = controller.run()

    assert result.status == RunStatus.CANCELLED
    assert result.error is None
    assert volumes.calls == 1
    assert result.format_state == FormatState.VERIFYING
    assert engine.calls == 0


def test_cancel_during_copy_stops_after_current_chunk(source_tree, tmp_path):
    class CancellingEngine(RecordingCopyEngine):
        def copy(self, manifest, dest_root, cancel_token=None, on_progress=None):
            def forward(snapshot):
                on_progress(snapshot)
                if snapshot.bytes_done > 0:
                    controller.cancel()
            return super().copy(manifest, dest_root, cancel_token, forward)

    dest = tmp_path / "dest"
    dest.mkdir()
    volumes = FakeVolumes()
    engine = CancellingEngine(str(dest), clock=StepClock(step=1.0))
    controller = make_controller(source_tree, volumes, FakeBackend(volumes, primary_label="IODD"), engine)

    result = controller.run()

    assert result.status == RunStatus.CANCELLED
    assert result.error is None
    assert result.format_state == FormatState.SUCCEEDED
    assert result.files_copied == 0
    assert result.bytes_copied == 512
    assert (dest / "game.iso").stat().st_size == 512


def test_scan_failure_never_copies(source_tree, tmp_path, monkeypatch):
    real_stat = os.stat

    def stat(path, *args, **kwargs):
        if os.path.basename(path) == "readme.txt":
            raise PermissionError(13, "Access is denied", path)
        return real_stat(path, *args, **kwargs)

    volumes = FakeVolumes()
    engine = RecordingCopyEngine(str(tmp_path))
    controller = make_controller(source_tree, volumes, FakeBackend(volumes, primary_label="IODD"), engine)
    monkeypatch.setattr(os, "stat", stat)

    result = controller.run()

    assert result.status == RunStatus.FAILED
    assert isinstance(result.error, ManifestScanFailed)
    assert result.format_state == FormatState.SUCCEEDED
    assert engine.calls == 0
    assert isinstance(drain(controller.events)[-1], RunResult)

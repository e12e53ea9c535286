"""
Tests for format, verification polling and fallback
"""

import time
import threading

import pytest

from conftest import FakeBackend, FakeVolumes
from core.errors import BackendLaunchFailed, CleanupFailed, FormatVerificationFailed
from core.format_orchestrator import FormatOrchestrator, label_matches
from core.models import (CancelToken, FileSystem, FormatState, FormatStateMachine, RunStatus,
                         VolumeInfo, VolumeTarget)

TARGET = VolumeTarget("f:", FileSystem.EXFAT, "IODD")


def make_orchestrator(backend, volumes, sleep, cleaned=None, cleaner=None):
    if cleaner is None:
        cleaned = cleaned if cleaned is not None else []
        cleaner = cleaned.append
    return FormatOrchestrator(backend, volumes, sleep=sleep, cleaner=cleaner)


class TestVerification:

    def test_case_insensitive_label_verifies_on_first_poll(self, sleep_recorder):
        volumes = FakeVolumes()
        backend = FakeBackend(volumes, primary_label="iodd")
        cleaned = []
        orchestrator = make_orchestrator(backend, volumes, sleep_recorder, cleaned)

        result = orchestrator.format(TARGET)

        assert result.succeeded
        assert volumes.calls == 1
        assert sleep_recorder.calls == []
        assert backend.fallback_calls == []
        assert cleaned == ["F:\\"]
        assert orchestrator.state == FormatState.SUCCEEDED

    def test_fallback_after_primary_poll_cycle(self, sleep_recorder):
        volumes = FakeVolumes()
        backend = FakeBackend(volumes, primary_label="OLD", fallback_label="IODD")
        orchestrator = make_orchestrator(backend, volumes, sleep_recorder)

        result = orchestrator.format(TARGET)

        assert result.succeeded
        assert len(backend.primary_calls) == 1
        assert len(backend.fallback_calls) == 1
        assert len(sleep_recorder.calls) == 7
        assert orchestrator.state_machine.history == [
            FormatState.NOT_STARTED, FormatState.PRIMARY_ATTEMPTED, FormatState.VERIFYING,
            FormatState.FALLBACK_ATTEMPTED, FormatState.RE_VERIFYING, FormatState.SUCCEEDED,
        ]

    def test_exact_attempt_caps_then_failure(self, sleep_recorder):
        volumes = FakeVolumes([VolumeInfo(is_ready=True, label="OLD")])
        backend = FakeBackend()
        cleaned = []
        orchestrator = make_orchestrator(backend, volumes, sleep_recorder, cleaned)

        result = orchestrator.format(TARGET)

        assert result.status == RunStatus.FAILED
        assert isinstance(result.error, FormatVerificationFailed)
        assert volumes.calls == 8 + 10
        assert sleep_recorder.calls == [1.0] * (7 + 9)
        assert len(backend.fallback_calls) == 1
        assert cleaned == []
        assert orchestrator.state == FormatState.FAILED

    def test_not_ready_volume_does_not_verify(self, sleep_recorder):
        volumes = FakeVolumes([VolumeInfo(is_ready=False, label="IODD")])
        orchestrator = make_orchestrator(FakeBackend(), volumes, sleep_recorder)

        assert orchestrator.format(TARGET).status == RunStatus.FAILED

    def test_poll_errors_count_as_not_ready(self, sleep_recorder):
        volumes = FakeVolumes([OSError("busy"), None, VolumeInfo(is_ready=True, label="IODD")])
        orchestrator = make_orchestrator(FakeBackend(), volumes, sleep_recorder)

        result = orchestrator.format(TARGET)

        assert result.succeeded
        assert volumes.calls == 3
        assert len(sleep_recorder.calls) == 2


class TestLaunchFailures:

    def test_primary_launch_failure_is_terminal(self, sleep_recorder):
        volumes = FakeVolumes()
        backend = FakeBackend(primary_error=BackendLaunchFailed("primary format", "F:", "not found"))
        orchestrator = make_orchestrator(backend, volumes, sleep_recorder)

        result = orchestrator.format(TARGET)

        assert isinstance(result.error, BackendLaunchFailed)
        assert backend.fallback_calls == []
        assert volumes.calls == 0
        assert orchestrator.state == FormatState.FAILED

    def test_fallback_launch_failure(self, sleep_recorder):
        volumes = FakeVolumes()
        backend = FakeBackend(fallback_error=BackendLaunchFailed("fallback format", "F:", "denied"))
        orchestrator = make_orchestrator(backend, volumes, sleep_recorder)

        result = orchestrator.format(TARGET)

        assert isinstance(result.error, BackendLaunchFailed)
        assert volumes.calls == 8


class TestCleanupAndCancel:

    def test_cleanup_failure_fails_format(self, sleep_recorder):
        volumes = FakeVolumes()
        backend = FakeBackend(volumes, primary_label="IODD")

        def cleaner(root):
            raise CleanupFailed("Cleanup", root + "locked.bin", PermissionError("denied"))

        orchestrator = make_orchestrator(backend, volumes, sleep_recorder, cleaner=cleaner)
        result = orchestrator.format(TARGET)

        assert isinstance(result.error, CleanupFailed)
        assert orchestrator.state == FormatState.FAILED

    def test_cancel_during_polling(self):
        volumes = FakeVolumes()
        token = CancelToken()
        sleeps = []

        def sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 3:
                token.cancel()

        orchestrator = FormatOrchestrator(FakeBackend(), volumes, sleep=sleep, cleaner=lambda root: None)
        result = orchestrator.format(TARGET, token)

        assert result.status == RunStatus.CANCELLED
        assert volumes.calls == 3
        assert not orchestrator.state.is_terminal

    def test_default_wait_wakes_on_cancel(self):
        token = CancelToken()

        class CancellingVolumes(FakeVolumes):
            def get_volume_info(self, drive):
                info = super().get_volume_info(drive)
                threading.Timer(0.05, token.cancel).start()
                return info

        volumes = CancellingVolumes()
        orchestrator = FormatOrchestrator(FakeBackend(), volumes, interval=30, cleaner=lambda root: None)

        started = time.monotonic()
        result = orchestrator.format(TARGET, token)

        assert result.status == RunStatus.CANCELLED
        assert volumes.calls == 1
        assert time.monotonic() - started < 10
        assert not orchestrator.state.is_terminal

    def test_cancel_before_start(self, sleep_recorder):
        token = CancelToken()
        token.cancel()
        backend = FakeBackend()

        result = make_orchestrator(backend, FakeVolumes(), sleep_recorder).format(TARGET, token)

        assert result.status == RunStatus.CANCELLED
        assert backend.primary_calls == []


class TestStateMachine:

    def test_regression_rejected(self):
        machine = FormatStateMachine()
        machine.advance(FormatState.PRIMARY_ATTEMPTED)
        machine.advance(FormatState.VERIFYING)
        with pytest.raises(ValueError):
            machine.advance(FormatState.PRIMARY_ATTEMPTED)

    def test_terminal_states_are_final(self):
        machine = FormatStateMachine()
        machine.advance(FormatState.FAILED)
        with pytest.raises(ValueError):
            machine.advance(FormatState.PRIMARY_ATTEMPTED)

    def test_cannot_skip_launch(self):
        with pytest.raises(ValueError):
            FormatStateMachine().advance(FormatState.VERIFYING)


@pytest.mark.parametrize("info,expected", [
    (VolumeInfo(is_ready=True, label="IoDd"), True),
    (VolumeInfo(is_ready=True, label="IODD2"), False),
    (VolumeInfo(is_ready=False, label="IODD"), False),
    (None, False),
])
def test_label_matches(info, expected):
    assert label_matches(info, "IODD") is expected


@pytest.mark.parametrize("label", ["", 'IO"DD', "a'b", "x\ny"])
def test_volume_target_rejects_unsafe_labels(label):
    with pytest.raises(ValueError):
        VolumeTarget("F", FileSystem.EXFAT, label)

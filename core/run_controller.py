"""
Run Controller - Format the target, then copy the source onto it
"""

import os
import sys
import time
import queue
import logging
import threading
from dataclasses import replace
from typing import Optional

from core.copy_engine import CopyEngine
from core.errors import RebuildError, SourceNotFound
from core.format_orchestrator import FormatOrchestrator
from core.manifest import build_manifest
from core.models import (CancelToken, FormatState, ProgressSnapshot, RunResult,
                         RunStatus, VolumeTarget)
from core.settings import RebuildOptions

logger = logging.getLogger(__name__)

STAGE_VALIDATING = "Validating"
STAGE_FORMATTING = "Formatting"
STAGE_SCANNING = "Scanning"
STAGE_COPYING = "Copying"
STAGE_DONE = "Done"


class RunController:
    """
    Runs one rebuild on a single worker: validate, format, scan, copy.

    Consumers read ProgressSnapshot and RunResult objects from `events`
    and may call cancel() at any time; nothing else is shared.
    """

    def __init__(self, source_root: str, drive: str, options: RebuildOptions,
                 volumes, orchestrator: FormatOrchestrator,
                 copy_engine: Optional[CopyEngine] = None,
                 events: Optional[queue.Queue] = None):
        self.source_root = source_root
        self.drive = drive
        self.options = options
        self.volumes = volumes
        self.orchestrator = orchestrator
        self.copy_engine = copy_engine or CopyEngine()
        self.events = events if events is not None else queue.Queue()

        self.cancel_token = CancelToken()
        self.result: Optional[RunResult] = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> threading.Thread:
        """Run on a background worker thread"""
        self._thread = threading.Thread(target=self.run, name="rebuild-worker", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)

    def cancel(self):
        """Request cancellation; honoured at the next checkpoint"""
        logger.info("Cancellation requested")
        self.cancel_token.cancel()

    def run(self) -> RunResult:
        """Execute the full rebuild synchronously and publish the result"""
        com_initialized = False
        if sys.platform == 'win32':
            # WMI lookups from this thread need COM
            import pythoncom
            pythoncom.CoInitialize()
            com_initialized = True

        start_time = time.time()
        try:
            result = self._run_stages()
        except Exception as e:
            logger.exception(f"Unexpected error during rebuild: {e}")
            result = RunResult(RunStatus.FAILED, error=e, format_state=self.orchestrator.state)
        finally:
            if com_initialized:
                pythoncom.CoUninitialize()

        result = replace(result, elapsed_seconds=time.time() - start_time)
        logger.info(f"Rebuild finished: {result.status.value}"
                    + (f" ({result.error})" if result.error else ""))
        self.result = result
        self.events.put(result)
        return result

    def _publish(self, snapshot: ProgressSnapshot):
        self.events.put(snapshot)

    def _finish(self, status: RunStatus, error=None, snapshot=None) -> RunResult:
        tracker = self.copy_engine.tracker
        files = tracker.state.files_done if tracker else 0
        copied = tracker.state.bytes_done_overall if tracker else 0
        return RunResult(status, error=error, snapshot=snapshot, files_copied=files,
                         bytes_copied=copied, format_state=self.orchestrator.state)

    def _run_stages(self) -> RunResult:
        # Stage 1: validate source and destination before touching anything
        self._publish(ProgressSnapshot(stage=STAGE_VALIDATING))
        try:
            if not self.source_root or not os.path.isdir(self.source_root):
                raise SourceNotFound("Source check", self.source_root or "<empty>",
                                     "folder not found or not a directory")
            letter = self.volumes.validate_destination(self.drive)
            target = VolumeTarget(letter, self.options.filesystem, self.options.label)
        except RebuildError as e:
            logger.error(str(e))
            return self._finish(RunStatus.FAILED, e)

        logger.info(f"Source: {self.source_root}")
        logger.info(f"Destination: {target.root} ({target.filesystem.value}, label {target.label})")

        if self.cancel_token.cancelled:
            return self._finish(RunStatus.CANCELLED)

        # Stage 2: format and verify
        self._publish(ProgressSnapshot(stage=STAGE_FORMATTING))
        format_result = self.orchestrator.format(target, self.cancel_token)
        if format_result.status != RunStatus.SUCCEEDED:
            return self._finish(format_result.status, format_result.error)

        if self.cancel_token.cancelled:
            return self._finish(RunStatus.CANCELLED)

        # Stage 3: scan the source
        self._publish(ProgressSnapshot(stage=STAGE_SCANNING))
        try:
            manifest = build_manifest(self.source_root, self.options.exclusions)
        except RebuildError as e:
            logger.error(str(e))
            return self._finish(RunStatus.FAILED, e)

        if manifest.total_files == 0:
            logger.warning(f"No files to copy in {self.source_root}")
            return self._finish(RunStatus.NOTHING_TO_DO)

        # Stage 4: copy
        final = {}

        def on_progress(snapshot: ProgressSnapshot):
            final['snapshot'] = snapshot
            self._publish(snapshot)

        copy_result = self.copy_engine.copy(manifest, target.root, self.cancel_token, on_progress)
        return self._finish(copy_result.status, copy_result.error, final.get('snapshot'))

"""
Copy Engine - Sequential chunked copy of a manifest onto the target volume
"""

import os
import time
import logging
from typing import Callable, Optional

from core.errors import DirectoryCreateFailed, FileCopyIOFailed, RebuildError
from core.manifest import list_source_directories
from core.models import CancelToken, Manifest, ManifestEntry, ProgressSnapshot, StageResult
from core.progress import ProgressTracker
from core.settings import COPY_CHUNK_SIZE, PROGRESS_INTERVAL

logger = logging.getLogger(__name__)


class CopyEngine:
    """
    Copies every manifest entry in order, one file at a time.

    Any I/O error stops the whole run. On cancel the file in flight is left
    as written so far; nothing is rolled back.
    """

    def __init__(self, chunk_size: int = COPY_CHUNK_SIZE,
                 progress_interval: float = PROGRESS_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        self.chunk_size = chunk_size
        self.progress_interval = progress_interval
        self.clock = clock

        self.on_progress: Optional[Callable[[ProgressSnapshot], None]] = None
        self.tracker: Optional[ProgressTracker] = None
        self._last_publish = None

    def copy(self, manifest: Manifest, dest_root: str,
             cancel_token: Optional[CancelToken] = None,
             on_progress: Optional[Callable[[ProgressSnapshot], None]] = None) -> StageResult:
        """Copy manifest into dest_root, reporting snapshots through on_progress"""
        cancel_token = cancel_token or CancelToken()
        if on_progress is not None:
            self.on_progress = on_progress

        self.tracker = ProgressTracker(manifest.total_files, manifest.total_bytes, clock=self.clock)
        self._last_publish = self.clock()
        start_time = time.time()

        logger.info(f"Starting file copy: {manifest.source_root} -> {dest_root}")
        logger.info(f"Files: {manifest.total_files}, Bytes: {manifest.total_bytes}")

        try:
            if not self._create_directories(manifest.source_root, dest_root, cancel_token):
                return self._cancelled()

            for entry in manifest:
                if cancel_token.cancelled:
                    return self._cancelled()

                if not self._copy_entry(entry, dest_root, cancel_token):
                    return self._cancelled()

        except RebuildError as e:
            logger.error(f"File copy error: {e}")
            self._publish(force=True)
            return StageResult.failed(e)

        elapsed = time.time() - start_time
        mb_copied = manifest.total_bytes / (1024 * 1024)
        speed_mbps = mb_copied / elapsed if elapsed > 0 else 0
        logger.info(f"File copy completed successfully in {elapsed:.1f} seconds")
        logger.info(f"Data copied: {mb_copied:.1f} MB at {speed_mbps:.1f} MB/s")

        if self.on_progress:
            self.on_progress(self.tracker.completed())
        return StageResult.ok()

    def _cancelled(self) -> StageResult:
        logger.info(f"Copy cancelled after {self.tracker.state.files_done} file(s)")
        self._publish(force=True)
        return StageResult.cancelled()

    def _create_directories(self, source_root: str, dest_root: str, cancel_token: CancelToken) -> bool:
        """Mirror the source directory tree up front. Returns False on cancel."""
        directories = list_source_directories(source_root)
        logger.info(f"Pre-creating {len(directories)} directories")

        for rel_dir in directories:
            if cancel_token.cancelled:
                return False
            dest_dir = os.path.join(dest_root, rel_dir)
            try:
                os.makedirs(dest_dir, exist_ok=True)
            except OSError as e:
                logger.error(f"Pre-create directory failed {dest_dir}: {e}")
                raise DirectoryCreateFailed("Create directory", dest_dir, e) from e

        logger.info("Directories created successfully")
        return True

    def _copy_entry(self, entry: ManifestEntry, dest_root: str, cancel_token: CancelToken) -> bool:
        """Stream one file in chunks. Returns False if cancelled part way."""
        dest_path = os.path.join(dest_root, entry.relative_path)
        self.tracker.start_file(entry.relative_path, entry.size_bytes)

        try:
            os.makedirs(os.path.dirname(dest_path) or dest_root, exist_ok=True)
        except OSError as e:
            raise DirectoryCreateFailed("Create directory", os.path.dirname(dest_path), e) from e

        try:
            with open(entry.absolute_source_path, 'rb') as fsrc, open(dest_path, 'wb') as fdst:
                while True:
                    if cancel_token.cancelled:
                        return False

                    chunk = fsrc.read(self.chunk_size)
                    if not chunk:
                        break

                    fdst.write(chunk)
                    self.tracker.add_bytes(len(chunk))
                    self._publish()

                    if cancel_token.cancelled:
                        return False

                fdst.flush()
                os.fsync(fdst.fileno())
        except OSError as e:
            logger.error(f"Failed to copy {entry.absolute_source_path}: {e}")
            raise FileCopyIOFailed("Copy file", dest_path, e, source=entry.absolute_source_path) from e

        self.tracker.finish_file()
        self._publish()
        logger.debug(f"OK: {entry.relative_path} ({entry.size_bytes} bytes)")
        return True

    def _publish(self, force: bool = False):
        """Sample speed and hand out a snapshot at most every progress_interval"""
        now = self.clock()
        if not force and now - self._last_publish < self.progress_interval:
            return
        self._last_publish = now
        self.tracker.sample()
        if self.on_progress:
            self.on_progress(self.tracker.snapshot())

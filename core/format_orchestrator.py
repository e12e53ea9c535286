"""
Format Orchestrator - Format, verify by polling, fall back, verify again
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from core.errors import BackendLaunchFailed, CleanupFailed, FormatVerificationFailed
from core.format_backend import FormatBackend
from core.models import (CancelToken, FileSystem, FormatState, FormatStateMachine,
                         StageResult, VolumeTarget)
from core.settings import (FALLBACK_VERIFY_ATTEMPTS, FAT32_ADVISORY_LIMIT,
                           PRIMARY_VERIFY_ATTEMPTS, VERIFY_INTERVAL)
from core.volume_manager import clean_volume_root

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Strategy:
    name: str
    launch: Callable
    attempts: int
    launched_state: FormatState
    verify_state: FormatState


def label_matches(info, label: str) -> bool:
    """A volume counts as formatted once it is ready and carries our label"""
    if info is None or not info.is_ready:
        return False
    return (info.label or "").casefold() == label.casefold()


class FormatOrchestrator:
    """Drives the primary and fallback format strategies for one target"""

    def __init__(self, backend: FormatBackend, volumes,
                 primary_attempts: int = PRIMARY_VERIFY_ATTEMPTS,
                 fallback_attempts: int = FALLBACK_VERIFY_ATTEMPTS,
                 interval: float = VERIFY_INTERVAL,
                 sleep: Optional[Callable[[float], None]] = None,
                 cleaner: Callable[[str], None] = clean_volume_root):
        self.backend = backend
        self.volumes = volumes
        self.primary_attempts = primary_attempts
        self.fallback_attempts = fallback_attempts
        self.interval = interval
        self.sleep = sleep  # None waits on the cancel token
        self.cleaner = cleaner
        self.state_machine = FormatStateMachine()

    @property
    def state(self) -> FormatState:
        return self.state_machine.state

    def _advance(self, new_state: FormatState):
        logger.info(f"Format state: {self.state.name} -> {new_state.name}")
        self.state_machine.advance(new_state)

    def _fail(self, error) -> StageResult:
        self._advance(FormatState.FAILED)
        logger.error(str(error))
        return StageResult.failed(error)

    def format(self, target: VolumeTarget, cancel_token: Optional[CancelToken] = None) -> StageResult:
        """Format target and confirm the result; never returns without a terminal outcome or cancel"""
        cancel_token = cancel_token or CancelToken()
        self.state_machine = FormatStateMachine()

        logger.info(f"Formatting {target.root} as {target.filesystem.value}, label '{target.label}'")
        self._fat32_advisory(target)

        strategies = [
            _Strategy("primary", self.backend.format_primary, self.primary_attempts,
                      FormatState.PRIMARY_ATTEMPTED, FormatState.VERIFYING),
            _Strategy("fallback", self.backend.format_fallback, self.fallback_attempts,
                      FormatState.FALLBACK_ATTEMPTED, FormatState.RE_VERIFYING),
        ]

        for strategy in strategies:
            if cancel_token.cancelled:
                logger.info("Format cancelled before launching the next strategy")
                return StageResult.cancelled()

            self._advance(strategy.launched_state)
            try:
                outcome = strategy.launch(target.drive_identifier, target.filesystem, target.label)
            except BackendLaunchFailed as e:
                return self._fail(e)
            logger.info(f"[{strategy.name}] Launch returned (exit code {outcome.exit_code}), verifying volume...")

            self._advance(strategy.verify_state)
            verified = self._poll_until_verified(target, strategy.attempts, cancel_token)
            if verified is None:
                return StageResult.cancelled()
            if verified:
                logger.info(f"[{strategy.name}] Label verified: {target.label}")
                break
            logger.warning(f"[{strategy.name}] Format could not be verified after {strategy.attempts} attempts")
        else:
            return self._fail(FormatVerificationFailed(
                "Format verification", target.root,
                f"volume label is not '{target.label}' or volume not ready after fallback"
            ))

        try:
            self.cleaner(target.root)
        except CleanupFailed as e:
            return self._fail(e)

        self._advance(FormatState.SUCCEEDED)
        return StageResult.ok()

    def _poll_until_verified(self, target: VolumeTarget, attempts: int,
                             cancel_token: CancelToken) -> Optional[bool]:
        """
        Poll the volume up to attempts times, interval apart.
        Returns True when verified, False when attempts ran out, None on cancel.
        """
        for attempt in range(1, attempts + 1):
            if cancel_token.cancelled:
                logger.info("Format verification cancelled")
                return None

            try:
                info = self.volumes.get_volume_info(target.drive_identifier)
                if info is None:
                    logger.info(f"Verification attempt {attempt}/{attempts}: drive not present")
                else:
                    logger.info(f"Verification attempt {attempt}/{attempts}: "
                                f"IsReady={info.is_ready}, Label='{info.label}'")
                if label_matches(info, target.label):
                    return True
            except Exception as e:
                logger.warning(f"Verification attempt {attempt}/{attempts} failed: {e}")

            if attempt < attempts:
                if self.sleep is not None:
                    self.sleep(self.interval)
                elif cancel_token.wait(self.interval):
                    logger.info("Format verification cancelled")
                    return None

        return False

    def _fat32_advisory(self, target: VolumeTarget):
        if target.filesystem != FileSystem.FAT32:
            return
        try:
            info = self.volumes.get_volume_info(target.drive_identifier)
        except Exception as e:
            logger.debug(f"Could not read volume size for FAT32 advisory: {e}")
            return
        if info is not None and info.total_bytes > FAT32_ADVISORY_LIMIT:
            logger.warning("FAT32 chosen on a volume larger than 32GB; Windows tools may refuse. Using best-effort.")

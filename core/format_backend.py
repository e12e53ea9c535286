"""
Format Backend - Launch OS format tools for a drive letter

Format tools run elevated through PowerShell's Start-Process -Verb RunAs.
The exit code of an elevated child does not make it back across the UAC
boundary reliably, so backends only report whether the launch happened;
the orchestrator confirms the result by watching the volume.
"""

import os
import logging
import tempfile
import subprocess
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from core.errors import BackendLaunchFailed
from core.models import FileSystem

logger = logging.getLogger(__name__)

FORMAT_TIMEOUT = 600  # seconds, generous for slow USB sticks

_NO_WINDOW = getattr(subprocess, 'CREATE_NO_WINDOW', 0)


@dataclass(frozen=True)
class LaunchOutcome:
    """What we know after a format tool returned"""
    strategy: str
    launched: bool = True
    exit_code: Optional[int] = None
    detail: str = ""


class FormatBackend:
    """Interface for the two format strategies"""

    def format_primary(self, drive: str, filesystem: FileSystem, label: str) -> LaunchOutcome:
        raise NotImplementedError

    def format_fallback(self, drive: str, filesystem: FileSystem, label: str) -> LaunchOutcome:
        raise NotImplementedError


def build_primary_command(drive: str, filesystem: FileSystem, label: str, system_dir: str = None) -> list:
    """PowerShell command line running format.com elevated and waiting for it"""
    system_dir = system_dir or os.path.join(os.environ.get('SystemRoot', r'C:\Windows'), 'System32')
    format_path = os.path.join(system_dir, 'format.com')
    format_args = f"{drive}: /FS:{filesystem.value} /V:{label} /Q /Y"
    ps_command = (
        f"Start-Process -FilePath '{format_path}' "
        f"-ArgumentList '{format_args}' -Verb RunAs -Wait"
    )
    return ['powershell.exe', '-NoProfile', '-ExecutionPolicy', 'Bypass', '-Command', ps_command]


def build_diskpart_script(drive: str, filesystem: FileSystem, label: str) -> str:
    """Select the volume by letter, quick format, then pin the same letter again"""
    return "\n".join([
        f"select volume {drive}",
        f"format fs={filesystem.value} label={label} quick",
        f"assign letter={drive}",
        "exit",
    ]) + "\n"


def build_fallback_command(script_path: str) -> list:
    ps_command = (
        f"Start-Process -FilePath 'diskpart.exe' "
        f"-ArgumentList '/s \"{script_path}\"' -Verb RunAs -Wait"
    )
    return ['powershell.exe', '-NoProfile', '-ExecutionPolicy', 'Bypass', '-Command', ps_command]


class WindowsFormatBackend(FormatBackend):
    """format.com first, diskpart as the fallback"""

    def __init__(self, timeout: float = FORMAT_TIMEOUT):
        self.timeout = timeout

    def _launch(self, strategy: str, drive: str, cmd: list) -> LaunchOutcome:
        logger.info(f"[{strategy}] Running: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                creationflags=_NO_WINDOW
            )
        except subprocess.TimeoutExpired:
            # The elevated child may still finish; verification decides
            logger.warning(f"[{strategy}] Format tool did not return within {self.timeout}s")
            return LaunchOutcome(strategy, launched=True, detail="timed out")
        except OSError as e:
            logger.error(f"[{strategy}] Could not start format tool: {e}")
            raise BackendLaunchFailed(f"{strategy} format", f"{drive}:", e) from e

        logger.info(f"[{strategy}] Process exited with code {result.returncode}")
        if result.stdout:
            logger.debug(f"[{strategy}] stdout:\n{result.stdout}")
        if result.stderr:
            logger.warning(f"[{strategy}] stderr:\n{result.stderr}")

        return LaunchOutcome(
            strategy,
            launched=True,
            exit_code=result.returncode,
            detail=(result.stderr or result.stdout or "").strip()
        )

    def format_primary(self, drive, filesystem, label):
        cmd = build_primary_command(drive, filesystem, label)
        return self._launch("primary", drive, cmd)

    def format_fallback(self, drive, filesystem, label):
        script = build_diskpart_script(drive, filesystem, label)
        script_path = os.path.join(
            tempfile.gettempdir(),
            f"iodd_diskpart_{drive}_{datetime.now().strftime('%Y%m%d_%H%M%S')}.txt"
        )

        try:
            with open(script_path, 'w', encoding='utf-8') as f:
                f.write(script)
        except OSError as e:
            raise BackendLaunchFailed("fallback format", f"{drive}:", e) from e

        logger.info(f"[fallback] DiskPart script {script_path}:\n{script}")

        try:
            return self._launch("fallback", drive, build_fallback_command(script_path))
        finally:
            try:
                os.remove(script_path)
            except OSError as e:
                logger.warning(f"[fallback] Could not delete script {script_path}: {e}")

"""
Volume Manager - Query, validate and empty mounted volumes on Windows
"""

import os
import sys
import stat
import shutil
import logging
from typing import List, Optional

import psutil

from core.errors import CleanupFailed, DestinationInvalid
from core.models import VolumeInfo, normalize_drive_letter

if sys.platform == 'win32':
    import wmi
    import win32api
    import pywintypes

logger = logging.getLogger(__name__)

# Win32_LogicalDisk.DriveType
DRIVE_REMOVABLE = 2
DRIVE_FIXED = 3
DRIVE_CDROM = 5


def drive_root(drive: str) -> str:
    return f"{normalize_drive_letter(drive)}:\\"


def check_destination(drive: str, info: Optional[VolumeInfo], system_drive: str = "") -> str:
    """
    Validate a destination drive identifier against its observed volume state.
    Returns the normalized drive letter, raises DestinationInvalid otherwise.
    """
    letter = normalize_drive_letter(drive)
    if len(letter) != 1 or not letter.isalpha():
        raise DestinationInvalid("Destination check", drive or "<empty>", "drive must be a single letter A-Z")

    if info is None:
        raise DestinationInvalid("Destination check", f"{letter}:", "drive not found")

    if not info.is_ready:
        raise DestinationInvalid("Destination check", f"{letter}:", "drive is not ready")

    if system_drive and normalize_drive_letter(system_drive) == letter:
        raise DestinationInvalid("Destination check", f"{letter}:", "refusing to format the system drive")

    return letter


def _clear_readonly_and_retry(func, path, _exc):
    """rmtree error hook: reset attributes and try once more"""
    os.chmod(path, stat.S_IWRITE)
    func(path)


def _rmtree(path: str):
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=_clear_readonly_and_retry)
    else:
        shutil.rmtree(path, onerror=_clear_readonly_and_retry)


def clean_volume_root(root: str):
    """
    Remove every file and directory left at the volume root.
    Any entry that cannot be removed raises CleanupFailed.
    """
    logger.info(f"Removing existing entries in {root}")

    if not os.path.isdir(root):
        logger.warning(f"Cleanup path not found: {root}")
        return

    with os.scandir(root) as it:
        entries = list(it)

    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                _rmtree(entry.path)
            else:
                # Reset read-only attribute before deleting
                os.chmod(entry.path, stat.S_IWRITE | stat.S_IREAD)
                os.remove(entry.path)
        except OSError as e:
            logger.error(f"Cleanup delete failed {entry.path}: {e}")
            raise CleanupFailed("Cleanup", entry.path, e) from e

    logger.info("Destination root is empty")


class VolumeManager:
    """Looks up mounted volumes by drive letter"""

    def __init__(self):
        if sys.platform != 'win32':
            raise RuntimeError("This tool only supports Windows")

        # WMI is connected lazily so it binds to the thread that uses it
        self.wmi = None

    def _connect_wmi(self):
        if self.wmi is not None:
            return self.wmi

        try:
            self.wmi = wmi.WMI()
        except Exception as e:
            error_msg = str(e)
            if 'winmgmts' in error_msg.lower():
                raise RuntimeError(
                    "Failed to connect to Windows Management Instrumentation (WMI).\n\n"
                    "Possible solutions:\n"
                    "1. Restart the 'Windows Management Instrumentation' service\n"
                    "2. Run: net stop winmgmt && net start winmgmt (as admin)\n"
                    "3. Check if antivirus is blocking WMI access"
                )
            raise RuntimeError(f"Failed to initialize volume manager: {error_msg}")
        return self.wmi

    def get_volume_info(self, drive: str) -> Optional[VolumeInfo]:
        """
        Current state of the volume mounted at drive.
        Returns None when no such drive exists, is_ready=False when it exists
        but cannot be read (no media, mid-format, dismounted).
        """
        root = drive_root(drive)

        if not os.path.exists(root):
            if not any(p.mountpoint.upper() == root.upper() for p in psutil.disk_partitions(all=True)):
                return None
            return VolumeInfo(is_ready=False)

        try:
            label, _serial, _max_len, _flags, file_system = win32api.GetVolumeInformation(root)
        except pywintypes.error as e:
            logger.debug(f"GetVolumeInformation({root}) failed: {e}")
            return VolumeInfo(is_ready=False)

        try:
            usage = psutil.disk_usage(root)
        except OSError as e:
            logger.debug(f"disk_usage({root}) failed: {e}")
            return VolumeInfo(is_ready=False, label=label or "", file_system=file_system or "")

        return VolumeInfo(
            is_ready=True,
            label=label or "",
            total_bytes=usage.total,
            free_bytes=usage.free,
            file_system=file_system or "",
        )

    def validate_destination(self, drive: str) -> str:
        """Raise DestinationInvalid unless drive is a ready, non-system volume"""
        info = self.get_volume_info(drive)
        return check_destination(drive, info, os.environ.get('SystemDrive', 'C:'))

    def list_volumes(self) -> List[dict]:
        """
        List ready volumes that can be used as a destination
        Returns list of dict with volume info, removable media first
        """
        volumes = []
        system_letter = normalize_drive_letter(os.environ.get('SystemDrive', 'C:'))
        drive_types = {}

        try:
            for logical_disk in self._connect_wmi().Win32_LogicalDisk():
                drive_types[normalize_drive_letter(logical_disk.DeviceID)] = logical_disk.DriveType
        except Exception as e:
            logger.warning(f"Could not query drive types from WMI: {e}")

        for partition in psutil.disk_partitions(all=False):
            letter = normalize_drive_letter(partition.mountpoint)
            if len(letter) != 1 or letter == system_letter:
                continue

            drive_type = drive_types.get(letter)
            if drive_type == DRIVE_CDROM or 'cdrom' in partition.opts:
                continue

            info = self.get_volume_info(letter)
            if info is None or not info.is_ready:
                continue

            volumes.append({
                'letter': letter,
                'root': drive_root(letter),
                'label': info.label,
                'file_system': info.file_system,
                'total_bytes': info.total_bytes,
                'free_bytes': info.free_bytes,
                'total_gb': info.total_bytes / (1024**3),
                'free_gb': info.free_bytes / (1024**3),
                'removable': drive_type == DRIVE_REMOVABLE or 'removable' in partition.opts,
            })

        volumes.sort(key=lambda v: (not v['removable'], v['letter']))
        logger.debug(f"Found {len(volumes)} candidate volume(s)")
        return volumes

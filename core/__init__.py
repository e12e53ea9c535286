"""
Core package for ioDD Rebuilder
"""

from core.copy_engine import CopyEngine
from core.format_backend import FormatBackend, LaunchOutcome, WindowsFormatBackend
from core.format_orchestrator import FormatOrchestrator
from core.manifest import build_manifest
from core.models import (CancelToken, FileSystem, FormatState, Manifest, ManifestEntry,
                         ProgressSnapshot, RunResult, RunStatus, VolumeInfo, VolumeTarget)
from core.progress import ProgressTracker
from core.run_controller import RunController
from core.volume_manager import VolumeManager

__all__ = [
    'CopyEngine',
    'FormatBackend',
    'LaunchOutcome',
    'WindowsFormatBackend',
    'FormatOrchestrator',
    'build_manifest',
    'CancelToken',
    'FileSystem',
    'FormatState',
    'Manifest',
    'ManifestEntry',
    'ProgressSnapshot',
    'RunResult',
    'RunStatus',
    'VolumeInfo',
    'VolumeTarget',
    'ProgressTracker',
    'RunController',
    'VolumeManager'
]

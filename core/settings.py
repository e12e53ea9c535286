"""
Settings - Tunables, defaults and persisted user preferences
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Optional

logger = logging.getLogger(__name__)

# Copy engine
COPY_CHUNK_SIZE = 1024 * 1024  # 1MB

# Format verification: primary poll cycle, then fallback poll cycle
PRIMARY_VERIFY_ATTEMPTS = 8
FALLBACK_VERIFY_ATTEMPTS = 10
VERIFY_INTERVAL = 1.0  # seconds

# Progress / speed smoothing
EMA_ALPHA = 0.20
MIN_ETA_SPEED = 1024  # bytes/second, below this the ETA is undefined
MIN_SAMPLE_SECONDS = 0.001
PROGRESS_INTERVAL = 0.25  # ~4 updates per second

# Large disk images go first so they land contiguously on the fresh volume
HIGH_PRIORITY_EXTENSIONS: FrozenSet[str] = frozenset({'.iso', '.img', '.vhd', '.vhdx'})

# Exact filenames (case-insensitive) never copied to the target
DEFAULT_EXCLUDED_NAMES: FrozenSet[str] = frozenset({
    'Thumbs.db',
    'desktop.ini',
    'iodd_push.ps1',
    'iodd_push_gui.ps1',
    'iodd_push_gui.bat',
    'iodd_push_to_drive.bat',
    'iodd_push_log.txt',
})

DEFAULT_LABEL = "IODD"
DEFAULT_FILESYSTEM = "exFAT"

# Windows' own tools refuse FAT32 above this size
FAT32_ADVISORY_LIMIT = 32 * 1024**3

PREFS_FILE = '.iodd_rebuilder_prefs.json'


@dataclass
class RebuildOptions:
    """Options chosen for a single rebuild run"""
    filesystem: str = DEFAULT_FILESYSTEM
    label: str = DEFAULT_LABEL
    exclusions: FrozenSet[str] = field(default_factory=lambda: DEFAULT_EXCLUDED_NAMES)


def load_preferences(path: Optional[str] = None) -> dict:
    """Load saved user preferences, empty dict if missing or unreadable"""
    path = path or PREFS_FILE
    try:
        if os.path.exists(path):
            with open(path, 'r', encoding='utf-8') as f:
                prefs = json.load(f)
            if isinstance(prefs, dict):
                return prefs
            logger.warning(f"Ignoring malformed preferences file {path}")
    except (OSError, ValueError) as e:
        logger.warning(f"Could not load preferences from {path}: {e}")
    return {}


def save_preferences(prefs: dict, path: Optional[str] = None):
    """Merge prefs into the preferences file"""
    path = path or PREFS_FILE
    merged = load_preferences(path)
    merged.update(prefs)
    try:
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(merged, f, indent=2)
    except OSError as e:
        logger.warning(f"Could not save preferences to {path}: {e}")

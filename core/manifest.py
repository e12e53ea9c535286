"""
Manifest - Enumerate, filter and order the files to copy
"""

import os
import logging
from typing import Iterable, Optional

from core.errors import ManifestScanFailed, SourceNotFound
from core.models import Manifest, ManifestEntry
from core.settings import DEFAULT_EXCLUDED_NAMES, HIGH_PRIORITY_EXTENSIONS

logger = logging.getLogger(__name__)


def is_high_priority(filename: str) -> bool:
    """Disk images (.iso/.img/.vhd/.vhdx) are scheduled first"""
    return os.path.splitext(filename)[1].lower() in HIGH_PRIORITY_EXTENSIONS


def normalize_exclusions(names: Optional[Iterable[str]]) -> frozenset:
    if names is None:
        names = DEFAULT_EXCLUDED_NAMES
    return frozenset(n.casefold() for n in names if n)


def _raise_scan_error(error: OSError):
    raise ManifestScanFailed("Source scan", error.filename or "<unknown>", error) from error


def build_manifest(source_root: str, exclusions: Optional[Iterable[str]] = None) -> Manifest:
    """
    Walk source_root and build the ordered copy manifest.

    Files whose name equals an exclusion (case-insensitive, no globbing) are
    dropped. The rest are ordered disk images first, then by size descending;
    equal keys keep walk order, which is made deterministic by sorting names.
    """
    if not source_root or not os.path.isdir(source_root):
        raise SourceNotFound("Source check", source_root or "<empty>", "folder not found or not a directory")

    excluded_names = normalize_exclusions(exclusions)
    entries = []
    excluded = 0

    logger.info(f"Scanning {source_root}")

    for root, dirs, files in os.walk(source_root, onerror=_raise_scan_error):
        dirs.sort()
        for name in sorted(files):
            if name.casefold() in excluded_names:
                excluded += 1
                logger.debug(f"Excluded: {os.path.join(root, name)}")
                continue

            path = os.path.join(root, name)
            try:
                size = os.stat(path).st_size
            except OSError as e:
                raise ManifestScanFailed("Source scan", path, e) from e

            entries.append(ManifestEntry(
                relative_path=os.path.relpath(path, source_root),
                absolute_source_path=os.path.abspath(path),
                size_bytes=size,
                is_high_priority_extension=is_high_priority(name),
            ))

    entries.sort(key=lambda e: (not e.is_high_priority_extension, -e.size_bytes))

    manifest = Manifest(source_root=os.path.abspath(source_root), entries=tuple(entries),
                        excluded_count=excluded)
    logger.info(f"Scan found {manifest.total_files} files ({manifest.total_bytes} bytes), "
                f"{excluded} excluded")
    return manifest


def list_source_directories(source_root: str) -> list:
    """Every directory below source_root, relative, parents before children"""
    directories = []
    for root, dirs, _files in os.walk(source_root, onerror=_raise_scan_error):
        dirs.sort()
        for name in dirs:
            directories.append(os.path.relpath(os.path.join(root, name), source_root))
    return directories

"""
ioDD Formatter - Format a drive letter as exFAT with label IODD

Usage: python iodd_formatter.py <drive_letter>
Example: python iodd_formatter.py F
Requires an elevated prompt. Exit code 0 on success, 1 on failure.
"""

import sys
import subprocess

import psutil

from core.models import normalize_drive_letter
from core.settings import DEFAULT_LABEL

FILESYSTEM = "exFAT"


def build_command(letter: str) -> list:
    script = (
        f"$volume = Get-Volume -DriveLetter {letter} -ErrorAction Stop\n"
        f"$volume | Format-Volume -FileSystem {FILESYSTEM} -NewFileSystemLabel {DEFAULT_LABEL} -Confirm:$false\n"
        "Write-Host 'Format complete'\n"
    )
    return ['powershell.exe', '-NoProfile', '-ExecutionPolicy', 'Bypass', '-Command', script]


def drive_exists(letter: str) -> bool:
    prefix = f"{letter}:"
    return any(p.mountpoint.upper().startswith(prefix) for p in psutil.disk_partitions(all=True))


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv

    if not argv or not argv[0].strip():
        print("Usage: iodd_formatter.py <drive_letter>", file=sys.stderr)
        print("Example: iodd_formatter.py F", file=sys.stderr)
        return 1

    letter = normalize_drive_letter(argv[0])
    if len(letter) != 1 or not ('A' <= letter <= 'Z'):
        print("Invalid drive letter. Must be A-Z.", file=sys.stderr)
        return 1

    if not drive_exists(letter):
        print(f"Drive {letter}: not found.", file=sys.stderr)
        return 1

    print(f"Formatting drive {letter}: as {FILESYSTEM} with label {DEFAULT_LABEL}...")

    try:
        result = subprocess.run(build_command(letter), capture_output=True, text=True)
    except OSError as e:
        print(f"Failed to start PowerShell: {e}", file=sys.stderr)
        return 1

    if result.stdout:
        print(result.stdout)
    if result.stderr:
        print(result.stderr, file=sys.stderr)

    if result.returncode != 0:
        print(f"PowerShell exited with code {result.returncode}", file=sys.stderr)
        return 1

    print("Format successful.")
    return 0


if __name__ == "__main__":
    sys.exit(main())

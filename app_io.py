# app_io.py
# Version: 1.2.0
# Wrappers around the Windows tools Chkdsk Sentry drives: privilege check, PowerShell CIM queries
# for fixed drives and pagefiles, fsutil dirty bit query/set, read-only chkdsk, chkdsk boot
# scheduling and chkntfs. Every command is an explicit argument list; nothing goes through a shell.

import ctypes
import json
import os
import re
import subprocess
from typing import Optional, List, Dict, Any, Sequence
import logging

import psutil

from app_types import CommandResult
from app_utils import normalize_drive_letter, unique_drive_letters

logger = logging.getLogger(__name__)

# Win32_LogicalDisk.DriveType for a local fixed disk
DRIVE_FIXED = 3

FIXED_DRIVES_QUERY = (
    f"Get-CimInstance -ClassName Win32_LogicalDisk -Filter 'DriveType={DRIVE_FIXED}' | "
    "Select-Object DeviceID | ConvertTo-Json -Compress"
)
PAGEFILES_QUERY = (
    "Get-CimInstance -ClassName Win32_PageFileUsage | "
    "Select-Object Name | ConvertTo-Json -Compress"
)

# chkdsk asks "Would you like to schedule this volume to be checked the next time the system restarts? (Y/N)"
BOOT_CONFIRMATION = "Y\n"


class ToolError(Exception):
    """An OS query the run cannot continue without has failed."""


class SystemTools:
    """Runs the OS utilities Chkdsk Sentry depends on."""

    def __init__(self, config, dry_run: bool = False):
        self.config = config
        self.dry_run = dry_run
        self.timeout = config.command_timeout_sec
        self._dirty_patterns = [re.compile(r"\b" + r"\s+".join(map(re.escape, marker.split())) + r"\b", re.IGNORECASE)
                                for marker in config.dirty_markers]

    def run(self, argv: Sequence[str], input_text: Optional[str] = None, mutating: bool = False) -> CommandResult:
        """Run one command and capture its result; launch failures are returned, not raised."""
        argv = tuple(str(a) for a in argv)

        if mutating and self.dry_run:
            logger.info(f"[dry-run] would run: {subprocess.list2cmdline(argv)}")
            return CommandResult(argv=argv, returncode=0, dry_run=True)

        logger.debug(f"Running: {subprocess.list2cmdline(argv)}")
        try:
            completed = subprocess.run(
                list(argv),
                input=input_text,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            return CommandResult(argv=argv, returncode=-1, launch_error=f"not found ({e})")
        except subprocess.TimeoutExpired:
            return CommandResult(argv=argv, returncode=-1, launch_error=f"timed out after {self.timeout}s")
        except OSError as e:
            return CommandResult(argv=argv, returncode=-1, launch_error=str(e))

        return CommandResult(
            argv=argv,
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def is_admin(self) -> bool:
        """True when the current process token is elevated."""
        try:
            return bool(ctypes.windll.shell32.IsUserAnAdmin())
        except (AttributeError, OSError) as e:
            # ctypes.windll only exists on Windows
            logger.debug(f"Administrator check unavailable: {e}")
            return False

    def _powershell_json(self, command: str) -> List[Dict[str, Any]]:
        """Run a PowerShell query that ends in ConvertTo-Json and return a list of objects."""
        result = self.run(["powershell", "-NoProfile", "-ExecutionPolicy", "Bypass", "-Command", command])
        if not result.ok:
            raise ToolError(result.describe())

        output = result.stdout.strip()
        if not output:
            return []

        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ToolError(f"Unparseable PowerShell output: {e}") from e

        if isinstance(data, dict):
            data = [data]  # Handle case with only one object
        if not isinstance(data, list):
            raise ToolError(f"Unexpected PowerShell output type: {type(data).__name__}")
        return [item for item in data if isinstance(item, dict)]

    def list_fixed_drives(self) -> List[str]:
        """Letters of local fixed disks, normalised and sorted ("C:", "D:", ...)."""
        disks = self._powershell_json(FIXED_DRIVES_QUERY)
        letters = unique_drive_letters(disk.get('DeviceID') for disk in disks)
        logger.debug(f"Fixed drives reported by CIM: {letters}")
        return letters

    def pagefile_drives(self) -> List[str]:
        """Drive letters hosting a configured pagefile."""
        pagefiles = self._powershell_json(PAGEFILES_QUERY)
        return unique_drive_letters(pf.get('Name') for pf in pagefiles)

    def boot_drive(self) -> str:
        """The system drive, defaulting to C: when SystemDrive is unset."""
        return normalize_drive_letter(os.environ.get("SystemDrive", "")) or "C:"

    def dirty_query(self, drive_letter: str) -> CommandResult:
        return self.run(["fsutil", "dirty", "query", drive_letter])

    def is_dirty_output(self, text: str) -> bool:
        """True when fsutil output contains any configured dirty marker."""
        return any(pattern.search(text or "") for pattern in self._dirty_patterns)

    def query_dirty(self, drive_letter: str) -> bool:
        """Dirty-bit inspector: True means a repair is already pending for the volume."""
        result = self.dirty_query(drive_letter)
        if result.launch_error:
            logger.warning(f"Dirty bit query for {drive_letter} failed: {result.describe()}")
            return False
        return self.is_dirty_output(result.stdout)

    def scan_volume(self, drive_letter: str) -> CommandResult:
        """Read-only consistency check; returncode 0 means no errors found."""
        return self.run(["chkdsk", drive_letter])

    def schedule_boot_repair(self, drive_letter: str) -> CommandResult:
        """chkdsk /f on a locked volume answers Y to "check at next restart"."""
        return self.run(["chkdsk", drive_letter, "/f"], input_text=BOOT_CONFIRMATION, mutating=True)

    def force_boot_check(self, drive_letter: str) -> CommandResult:
        """chkntfs /C makes autochk honour the pending check at next boot."""
        return self.run(["chkntfs", "/C", drive_letter], mutating=True)

    def set_dirty(self, drive_letter: str) -> CommandResult:
        return self.run(["fsutil", "dirty", "set", drive_letter], mutating=True)

    def drive_size(self, drive_letter: str) -> Optional[int]:
        """Total size in bytes, or None when the volume cannot be read."""
        try:
            return psutil.disk_usage(f"{drive_letter}\\").total
        except OSError as e:
            logger.debug(f"Failed to get drive size for {drive_letter}: {e}")
            return None

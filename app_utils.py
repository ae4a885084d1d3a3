# app_utils.py
# Version: 0.2.0
# Shared utility functions for Chkdsk Sentry: drive letter normalisation, config hashing and formatting.

import hashlib
import re
from pathlib import Path
from typing import Iterable, List
import logging

logger = logging.getLogger(__name__)

_DRIVE_PREFIX = re.compile(r"^\s*([A-Za-z])\s*:")

def sha256_head(path: Path, n: int = 16) -> str:
    """Get first n characters of SHA256 hash of file at path."""
    try:
        sha256_hash = hashlib.sha256()
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(4096), b""):
                sha256_hash.update(chunk)
        return sha256_hash.hexdigest()[:n]
    except Exception as e:
        logger.warning(f"Could not compute SHA256 for {path}: {e}")
        return "unknown"

def normalize_drive_letter(drive_letter) -> str:
    """Normalize drive letter to uppercase with colon.

    Args:
        drive_letter: String or None to normalize ("c", "c:", "C:\\pagefile.sys")

    Returns:
        Normalized drive letter (e.g., "C:") or empty string if invalid
    """
    if drive_letter is None or not isinstance(drive_letter, str):
        return ""

    if not drive_letter.strip():
        return ""

    letter = drive_letter.strip().upper()
    if len(letter) == 1 and letter.isalpha():
        return f"{letter}:"

    match = _DRIVE_PREFIX.match(letter)
    if match:
        return f"{match.group(1)}:"
    return ""

def unique_drive_letters(values: Iterable) -> List[str]:
    """Normalize, drop invalid entries and de-duplicate, keeping sorted order."""
    letters = {normalize_drive_letter(v) for v in values}
    letters.discard("")
    return sorted(letters)

def bare_letter(drive_letter: str) -> str:
    """"E:" -> "E" (used in task names)."""
    return normalize_drive_letter(drive_letter).rstrip(':')

def format_bytes(bytes_value) -> str:
    """Format bytes as human-readable size using binary units (1024-based).

    Args:
        bytes_value: Integer or float number of bytes

    Returns:
        Formatted string with appropriate unit (B, KB, MB, GB, TB, PB)
    """
    if bytes_value is None:
        return "0B"

    # Convert to int, truncating floats
    value = int(bytes_value) if isinstance(bytes_value, (int, float)) else 0

    if value < 0:
        return "0B"

    for unit in ['B', 'KB', 'MB', 'GB', 'TB']:
        if value < 1024:
            return f"{value}{unit}"
        value //= 1024
    return f"{value}PB"

def join_letters(letters: Iterable[str]) -> str:
    """Format a list of drive letters for console output."""
    letters = list(letters)
    return ", ".join(letters) if letters else "none"

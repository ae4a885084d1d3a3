"""Tests for drive letter helpers and formatting."""

import pytest

from app_utils import bare_letter, format_bytes, join_letters, normalize_drive_letter, unique_drive_letters


@pytest.mark.parametrize("value, expected", [
    ("c", "C:"),
    ("c:", "C:"),
    (" D: ", "D:"),
    ("e:\\pagefile.sys", "E:"),
    ("", ""),
    (None, ""),
    ("12", ""),
    ("\\\\?\\Volume{abc}\\", ""),
])
def test_normalize_drive_letter(value, expected):
    assert normalize_drive_letter(value) == expected


def test_unique_drive_letters():
    assert unique_drive_letters(["d:", "C:\\pagefile.sys", "D:", None, "bogus"]) == ["C:", "D:"]


def test_bare_letter():
    assert bare_letter("e:") == "E"


def test_format_bytes():
    assert format_bytes(None) == "0B"
    assert format_bytes(512) == "512B"
    assert format_bytes(2048) == "2KB"
    assert format_bytes(5 * 1024 ** 3) == "5GB"


def test_join_letters():
    assert join_letters([]) == "none"
    assert join_letters(["C:", "D:"]) == "C:, D:"

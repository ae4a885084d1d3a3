"""The restart dialog must never take the run down."""

import sys

from app_notify import show_restart_notification


def test_failure_degrades_to_warning(monkeypatch, caplog):
    # A None entry makes the PySide6 import fail
    monkeypatch.setitem(sys.modules, "PySide6.QtWidgets", None)
    assert show_restart_notification("Restart required") is False
    assert "Could not show desktop notification" in caplog.text

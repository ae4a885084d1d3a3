"""Tests for the human log and NDJSON event stream."""

import json
import logging

from app_config import AppConfig
from app_logging import LoggingManager, SizeRotatingFileHandler
from app_types import CommandResult, DriveClass, DriveOutcome, DriveResult, RunSummary


def read_events(path):
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]


def test_ndjson_events(tmp_path, restore_root_logger):
    manager = LoggingManager(tmp_path / "logs", AppConfig())
    result = DriveResult(letter="E:", drive_class=DriveClass.IDLE_ELIGIBLE,
                         outcomes={DriveOutcome.SCHEDULED_IDLE}, scan_exit_code=3, task_name="ChkdskRepair_E")

    manager.log_command("E:", "scan", CommandResult(argv=("chkdsk", "E:"), returncode=3))
    manager.log_drive_result(result)
    manager.log_run_summary(RunSummary.from_results([result]))

    events = read_events(manager.get_ndjson_file())
    assert [e["event_type"] for e in events] == ["command", "drive_result", "run_summary"]
    assert events[0]["argv"] == ["chkdsk", "E:"]
    assert events[1]["outcomes"] == ["scheduled-idle-repair"]
    assert events[1]["task_name"] == "ChkdskRepair_E"
    assert events[2]["counts"]["scheduled-idle-repair"] == 1
    assert events[2]["requires_restart"] is False
    assert all("timestamp" in e for e in events)


def test_human_log_written(tmp_path, restore_root_logger):
    manager = LoggingManager(tmp_path / "logs", AppConfig())
    manager.log_system_event("TEST", "hello", {"drive": "C:"})
    for h in logging.getLogger().handlers:
        h.flush()

    files = manager.get_log_files()
    assert files == [tmp_path / "logs" / "Log_current1.txt"]
    text = files[0].read_text(encoding="utf-8")
    assert "SYSTEM STARTUP" in text
    assert "SYSTEM TEST hello drive=C:" in text


def test_ndjson_disabled(tmp_path, restore_root_logger):
    manager = LoggingManager(tmp_path / "logs", AppConfig(log_ndjson=False))
    assert manager.get_ndjson_file() is None


def test_console_only_without_log_dir(restore_root_logger):
    manager = LoggingManager(None, AppConfig())
    assert manager.get_log_files() == []
    assert manager.get_ndjson_file() is None
    assert not any(isinstance(h, SizeRotatingFileHandler) for h in logging.getLogger().handlers)


def test_numbered_rotation(tmp_path):
    log_file = tmp_path / "Log_current1.txt"
    handler = SizeRotatingFileHandler(log_file, maxBytes=10, backupCount=3, encoding="utf-8")
    try:
        for i in range(4):
            handler.emit(logging.LogRecord("t", logging.INFO, __file__, 1, f"message number {i}", None, None))
    finally:
        handler.close()

    assert (tmp_path / "Log_current2.txt").exists()
    assert (tmp_path / "Log_current3.txt").exists()
    assert not (tmp_path / "Log_current4.txt").exists()

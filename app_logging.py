# app_logging.py
# Version: 1.1.0
# Logging system for Chkdsk Sentry with numbered human-readable log rotation, an NDJSON
# event stream (one event per external command, per drive outcome and per run), and
# a console-only mode when the log directory is unavailable.

import json
import logging
import logging.handlers
import os
from pathlib import Path
from typing import Dict, Any, Optional, List
from datetime import datetime, timezone

from app_types import CommandResult, DriveResult, RunSummary

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


class SizeRotatingFileHandler(logging.handlers.RotatingFileHandler):
    """Rotating file handler that uses numbered rotation: Log_current1.txt to Log_current5.txt."""

    def doRollover(self):
        """Perform rollover with numbered file naming scheme."""
        if self.stream:
            self.stream.close()
            self.stream = None

        base, ext = os.path.splitext(self.baseFilename)   # ".../Log_current1", ".txt"

        # ".../Log_current1" -> ".../Log_current"
        if base.endswith("1"):
            root = base[:-1]
        else:
            root = base.rstrip("0123456789")

        max_keep = self.backupCount if self.backupCount > 0 else 5

        last = f"{root}{max_keep}{ext}"
        if os.path.exists(last):
            os.remove(last)

        # Shift N-1 -> N (descending)
        for i in range(max_keep - 1, 0, -1):
            src = f"{root}{i}{ext}"
            dst = f"{root}{i + 1}{ext}"
            if os.path.exists(src):
                if os.path.exists(dst):
                    os.remove(dst)
                os.rename(src, dst)

        self.mode = "w"
        self.stream = self._open()


class EventLogger:
    """Handles structured event logging with NDJSON output."""

    def __init__(self, log_dir: Optional[Path], config):
        self.ndjson_file: Optional[Path] = None

        if config.log_ndjson and log_dir is not None:
            self.ndjson_file = log_dir / "events.ndjson"

    def log_command(self, drive_letter: str, step: str, result: CommandResult):
        """Log one external tool invocation."""
        self._write_ndjson_event({
            "event_type": "command",
            "drive_letter": drive_letter,
            "step": step,
            "argv": list(result.argv),
            "returncode": result.returncode,
            "launch_error": result.launch_error,
            "dry_run": result.dry_run,
        })

    def log_drive_result(self, result: DriveResult):
        """Log the final outcome of one drive."""
        self._write_ndjson_event({
            "event_type": "drive_result",
            "drive_letter": result.letter,
            "drive_class": result.drive_class.value,
            "outcomes": sorted(o.value for o in result.outcomes),
            "scan_exit_code": result.scan_exit_code,
            "task_name": result.task_name,
            "unconfirmed_steps": result.unconfirmed_steps,
            "message": result.message,
        })

    def log_run_summary(self, summary: RunSummary):
        """Log the reduced run summary."""
        self._write_ndjson_event({
            "event_type": "run_summary",
            "counts": summary.counts(),
            "requires_restart": summary.requires_restart,
        })

    def _write_ndjson_event(self, event: Dict[str, Any]):
        """Write an event to the NDJSON file."""
        if not self.ndjson_file:
            return

        event = {"timestamp": datetime.now(timezone.utc).isoformat(), **event}
        try:
            with open(self.ndjson_file, 'a', encoding='utf-8') as f:
                f.write(json.dumps(event, ensure_ascii=False) + '\n')
        except OSError as e:
            logger.error(f"Failed to write NDJSON event: {e}")


class HumanLogger:
    """Configures the root logger: rotating human-readable file plus console."""

    def __init__(self, log_dir: Optional[Path], config, debug: bool = False):
        self.log_dir = log_dir
        self.max_size_kb = config.log_max_kb
        self.history_count = config.log_history_count
        self.debug = debug
        self.current_log: Optional[Path] = None

        if self.log_dir is not None:
            # Current/active file is ALWAYS "1"
            self.current_log = self.log_dir / "Log_current1.txt"

        self._setup_logging()

    def _setup_logging(self):
        self.formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

        root_logger = logging.getLogger()
        root_logger.setLevel(logging.DEBUG if self.debug else logging.INFO)

        # Clear existing handlers to prevent duplication
        root_logger.handlers.clear()

        open_error = None
        if self.current_log is not None:
            try:
                file_handler = SizeRotatingFileHandler(
                    self.current_log,
                    maxBytes=self.max_size_kb * 1024,
                    backupCount=self.history_count,
                    encoding='utf-8'
                )
            except OSError as e:
                open_error = e
                self.log_dir = None
                self.current_log = None
            else:
                file_handler.setFormatter(self.formatter)
                file_handler.setLevel(logging.DEBUG if self.debug else logging.INFO)
                root_logger.addHandler(file_handler)

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(self.formatter)
        console_handler.setLevel(logging.DEBUG if self.debug else logging.WARNING)
        root_logger.addHandler(console_handler)

        if open_error:
            logger.warning(f"Could not open log file: {open_error} (logging to console only)")

    def log_system_event(self, event_type: str, message: str, details: Dict[str, Any] = None):
        """Log a system event line (STARTUP, SUMMARY, SHUTDOWN...)."""
        if details:
            details_str = " ".join(f"{k}={v}" for k, v in details.items())
            logger.info(f"SYSTEM {event_type} {message} {details_str}")
        else:
            logger.info(f"SYSTEM {event_type} {message}")

    def get_log_files(self) -> List[Path]:
        """Get list of available log files."""
        if self.log_dir is None:
            return []
        files = []
        max_keep = self.history_count if self.history_count > 0 else 5
        for i in range(1, max_keep + 1):
            p = self.log_dir / f"Log_current{i}.txt"
            if p.exists():
                files.append(p)
        return files


class LoggingManager:
    """Manages both human and NDJSON logging."""

    def __init__(self, log_dir: Optional[Path], config, debug: bool = False):
        self.log_dir = log_dir
        fallback_reason = None
        if self.log_dir is not None:
            try:
                self.log_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                # Console-only logging; reported once the console handler exists
                self.log_dir = None
                fallback_reason = str(e)

        self.human_logger = HumanLogger(self.log_dir, config, debug=debug)
        self.log_dir = self.human_logger.log_dir
        self.event_logger = EventLogger(self.log_dir, config)

        if fallback_reason:
            logger.warning(f"Could not create log directory {log_dir}: {fallback_reason} (logging to console only)")

        self.human_logger.log_system_event("STARTUP", "Chkdsk Sentry started")

    def log_command(self, drive_letter: str, step: str, result: CommandResult):
        level = logging.DEBUG if result.ok else logging.INFO
        logger.log(level, f"{drive_letter} {step}: {' '.join(result.argv)} -> {result.describe()}")
        self.event_logger.log_command(drive_letter, step, result)

    def log_drive_result(self, result: DriveResult):
        outcomes = ",".join(sorted(o.value for o in result.outcomes))
        logger.info(f"Drive {result.letter} ({result.drive_class.value}) -> {outcomes}"
                    + (f" [{result.message}]" if result.message else ""))
        self.event_logger.log_drive_result(result)

    def log_run_summary(self, summary: RunSummary):
        self.human_logger.log_system_event("SUMMARY", "Run complete", summary.counts())
        self.event_logger.log_run_summary(summary)

    def log_system_event(self, event_type: str, message: str, details: Dict[str, Any] = None):
        self.human_logger.log_system_event(event_type, message, details)

    def get_log_files(self) -> List[Path]:
        return self.human_logger.get_log_files()

    def get_ndjson_file(self) -> Optional[Path]:
        return self.event_logger.ndjson_file

    def shutdown(self):
        """Shutdown logging system."""
        self.human_logger.log_system_event("SHUTDOWN", "Chkdsk Sentry exiting")
        logging.shutdown()

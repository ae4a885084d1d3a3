"""Shared test fixtures: a SystemTools double that answers like the Windows utilities."""

import json
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import pytest

from app_config import AppConfig
from app_io import SystemTools
from app_types import CommandResult


@dataclass
class Call:
    argv: Tuple[str, ...]
    input_text: Optional[str]
    mutating: bool


class FakeTools(SystemTools):
    """Scripted fsutil/chkdsk/chkntfs/schtasks/powershell responses, recording every call.

    fail maps a command key to a return code, or to None for "could not be started":
    "fixed-drives", "pagefiles", "chkdsk-f", "chkntfs", "fsutil-set", "schtasks-create", "schtasks-delete".
    """

    def __init__(self, config=None, fixed=("C:",), pagefiles=("C:\\pagefile.sys",), boot="C:",
                 dirty=(), scan_errors=None, fail=None, admin=True, dry_run=False, sizes=None):
        super().__init__(config or AppConfig(), dry_run=dry_run)
        self.fixed = list(fixed)
        self.pagefiles = list(pagefiles)
        self.boot = boot
        self.dirty = set(dirty)
        self.scan_errors = dict(scan_errors or {})
        self.fail = dict(fail or {})
        self.admin = admin
        self.sizes = dict(sizes or {})
        self.tasks = set()
        self.calls = []

    def is_admin(self):
        return self.admin

    def boot_drive(self):
        return self.boot

    def drive_size(self, drive_letter):
        return self.sizes.get(drive_letter)

    def run(self, argv, input_text=None, mutating=False):
        argv = tuple(str(a) for a in argv)
        self.calls.append(Call(argv, input_text, mutating))
        if mutating and self.dry_run:
            return CommandResult(argv=argv, returncode=0, dry_run=True)
        return self._respond(argv, input_text)

    def _failure(self, key, argv):
        code = self.fail[key]
        if code is None:
            return CommandResult(argv=argv, returncode=-1, launch_error="not found")
        return CommandResult(argv=argv, returncode=code, stderr=f"{key} failed")

    def _respond(self, argv, input_text):
        tool = argv[0].lower()

        if tool == "powershell":
            query = argv[-1]
            if "Win32_LogicalDisk" in query:
                if "fixed-drives" in self.fail:
                    return self._failure("fixed-drives", argv)
                rows = [{"DeviceID": d} for d in self.fixed]
            else:
                if "pagefiles" in self.fail:
                    return self._failure("pagefiles", argv)
                rows = [{"Name": p} for p in self.pagefiles]
            if not rows:
                return CommandResult(argv=argv, returncode=0, stdout="")
            payload = rows[0] if len(rows) == 1 else rows
            return CommandResult(argv=argv, returncode=0, stdout=json.dumps(payload))

        if tool == "fsutil":
            action, letter = argv[2], argv[3]
            if action == "query":
                state = "is Dirty" if letter in self.dirty else "is NOT Dirty"
                return CommandResult(argv=argv, returncode=0, stdout=f"Volume - {letter} {state}\n")
            if "fsutil-set" in self.fail:
                return self._failure("fsutil-set", argv)
            self.dirty.add(letter)
            return CommandResult(argv=argv, returncode=0, stdout=f"Volume - {letter} is now marked as dirty\n")

        if tool == "chkdsk":
            letter = argv[1]
            if len(argv) == 2:
                return CommandResult(argv=argv, returncode=self.scan_errors.get(letter, 0))
            if "chkdsk-f" in self.fail:
                return self._failure("chkdsk-f", argv)
            # Volume in use: chkdsk queues the check and exits non-zero
            return CommandResult(argv=argv, returncode=3,
                                 stdout="Chkdsk cannot run because the volume is in use by another process.")

        if tool == "chkntfs":
            if "chkntfs" in self.fail:
                return self._failure("chkntfs", argv)
            return CommandResult(argv=argv, returncode=0)

        if tool == "schtasks":
            action, name = argv[1].lower(), argv[3]
            if action == "/create":
                if "schtasks-create" in self.fail:
                    return self._failure("schtasks-create", argv)
                self.tasks.add(name)
                return CommandResult(argv=argv, returncode=0, stdout="SUCCESS")
            if action == "/query":
                return CommandResult(argv=argv, returncode=0 if name in self.tasks else 1)
            if action == "/delete":
                if "schtasks-delete" in self.fail:
                    return self._failure("schtasks-delete", argv)
                self.tasks.discard(name)
                return CommandResult(argv=argv, returncode=0)

        raise AssertionError(f"unexpected command {argv}")

    def commands(self, tool):
        return [c.argv for c in self.calls if c.argv[0].lower() == tool]


@pytest.fixture()
def restore_root_logger():
    """LoggingManager reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in root.handlers:
        if h not in handlers:
            h.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture()
def config():
    return AppConfig()


@pytest.fixture()
def make_tools(config):
    def _make(**kwargs):
        kwargs.setdefault("config", config)
        return FakeTools(**kwargs)
    return _make

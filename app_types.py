# app_types.py
# Version: 1.1.0
# Shared type definitions for Chkdsk Sentry: drive classification, per-drive outcomes,
# external command results, scheduled task descriptors and the reduced run summary.
#
# Version History:
# 1.1.0 - Replaced the four accumulator lists with DriveResult records reduced into RunSummary
#       - Added StepResult for the restart scheduling steps (recorded, never gated)
# 1.0.0 - Initial types

from typing import List, Optional, Set, Tuple
from dataclasses import dataclass, field
from enum import Enum

class DriveClass(Enum):
    REBOOT_REQUIRED = "reboot-required"
    IDLE_ELIGIBLE = "idle-eligible"

class DriveOutcome(Enum):
    HEALTHY = "healthy"
    SCHEDULED_REBOOT = "scheduled-reboot-repair"
    SCHEDULED_IDLE = "scheduled-idle-repair"
    ALREADY_DIRTY = "already-dirty"
    SCHEDULING_FAILED = "scheduling-failed"

@dataclass
class CommandResult:
    """Result of a single external tool invocation."""
    argv: Tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""
    launch_error: Optional[str] = None  # Set when the executable could not be started
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.launch_error is None and self.returncode == 0

    def describe(self) -> str:
        """One-line description for logs and failure messages."""
        if self.launch_error:
            return f"{self.argv[0]} could not be started: {self.launch_error}"
        detail = (self.stderr or self.stdout).strip().splitlines()
        tail = f" ({detail[-1]})" if detail else ""
        return f"{self.argv[0]} exited with {self.returncode}{tail}"

@dataclass
class StepResult:
    """One step of the restart scheduling sequence; passed is False when its exit status did not confirm it."""
    name: str
    command: Optional[CommandResult]
    passed: bool
    message: str = ""

@dataclass(frozen=True)
class ScheduledTaskSpec:
    """One-shot idle repair task handed to the OS task scheduler."""
    name: str  # ChkdskRepair_E
    drive_letter: str  # E:
    command_line: str  # What the task's action executes
    idle_minutes: int = 10
    run_as: str = "SYSTEM"
    run_level: str = "HIGHEST"

@dataclass
class DriveResult:
    """Everything observed and done for one drive during a run."""
    letter: str
    drive_class: DriveClass
    outcomes: Set[DriveOutcome] = field(default_factory=set)
    scan_exit_code: Optional[int] = None
    size_bytes: Optional[int] = None
    task_name: Optional[str] = None
    steps: List[StepResult] = field(default_factory=list)
    message: str = ""

    @property
    def reboot_required(self) -> bool:
        return self.drive_class is DriveClass.REBOOT_REQUIRED

    @property
    def unconfirmed_steps(self) -> List[str]:
        return [s.name for s in self.steps if not s.passed]

    def has(self, outcome: DriveOutcome) -> bool:
        return outcome in self.outcomes

@dataclass(frozen=True)
class RunSummary:
    """Outcome lists reduced from the ordered per-drive results."""
    results: Tuple[DriveResult, ...]

    @classmethod
    def from_results(cls, results: List[DriveResult]) -> "RunSummary":
        return cls(results=tuple(results))

    def _letters(self, outcome: DriveOutcome) -> List[str]:
        return [r.letter for r in self.results if r.has(outcome)]

    @property
    def healthy(self) -> List[str]:
        return self._letters(DriveOutcome.HEALTHY)

    @property
    def reboot_scheduled(self) -> List[str]:
        return self._letters(DriveOutcome.SCHEDULED_REBOOT)

    @property
    def idle_scheduled(self) -> List[str]:
        return self._letters(DriveOutcome.SCHEDULED_IDLE)

    @property
    def scheduling_failed(self) -> List[str]:
        return self._letters(DriveOutcome.SCHEDULING_FAILED)

    @property
    def already_dirty(self) -> List[str]:
        return self._letters(DriveOutcome.ALREADY_DIRTY)

    @property
    def requires_restart(self) -> bool:
        return bool(self.reboot_scheduled)

    @property
    def unconfirmed(self) -> List[DriveResult]:
        """Drives scheduled for restart where a scheduling step reported failure."""
        return [r for r in self.results if r.unconfirmed_steps]

    def counts(self) -> dict:
        return {outcome.value: len(self._letters(outcome)) for outcome in DriveOutcome}

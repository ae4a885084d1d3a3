# app_core.py
# Version: 2.2.0
# Core pipeline for Chkdsk Sentry: reboot-drive classification, the per-drive
# dirty-check -> read-only scan -> repair scheduling sequence, and the restart scheduling steps.
# Drives are processed one at a time; each produces a DriveResult appended to an ordered list.

from typing import Callable, FrozenSet, List, Optional
import logging

from app_config import AppConfig
from app_io import SystemTools
from app_tasks import RepairTaskScheduler
from app_types import CommandResult, DriveClass, DriveOutcome, DriveResult, RunSummary, StepResult
from app_utils import unique_drive_letters

logger = logging.getLogger(__name__)

# Restart scheduling step names, in execution order
STEP_SCHEDULE_BOOT = "schedule-boot-check"
STEP_FORCE_BOOT = "force-boot-check"
STEP_SET_DIRTY = "set-dirty-bit"


def classify_reboot_drives(tools: SystemTools) -> FrozenSet[str]:
    """Drives that can only be repaired at restart: the boot drive plus every pagefile drive.

    Pagefile enumeration failures degrade to the boot drive alone.
    """
    letters = [tools.boot_drive()]
    try:
        letters.extend(tools.pagefile_drives())
    except Exception as e:
        logger.warning(f"Could not enumerate pagefiles ({e}); treating only {letters[0]} as reboot-required")
    return frozenset(unique_drive_letters(letters))


class RepairEngine:
    """Runs the per-drive pipeline and collects DriveResult records."""

    def __init__(self, config: AppConfig, tools: SystemTools, tasks: Optional[RepairTaskScheduler] = None,
                 logging_manager=None):
        self.config = config
        self.tools = tools
        self.tasks = tasks or RepairTaskScheduler(config, tools)
        self.logging_manager = logging_manager

        # Called with each DriveResult as soon as the drive is done (console progress)
        self.progress_callback: Callable[[DriveResult], None] = lambda result: None

    def _record_command(self, drive_letter: str, step: str, result: CommandResult):
        if self.logging_manager:
            self.logging_manager.log_command(drive_letter, step, result)

    def discover_drives(self) -> List[str]:
        """Fixed drives minus the configured exclusions."""
        drives = self.tools.list_fixed_drives()
        excluded = set(self.config.excluded_drives)
        skipped = [d for d in drives if d in excluded]
        if skipped:
            logger.info(f"Skipping excluded drives: {', '.join(skipped)}")
        return [d for d in drives if d not in excluded]

    def run(self, drives: List[str]) -> RunSummary:
        """Process every drive in order and reduce the results."""
        reboot_drives = classify_reboot_drives(self.tools)
        logger.info(f"Reboot-required drives: {', '.join(sorted(reboot_drives)) or 'none'}")

        results: List[DriveResult] = []
        for letter in drives:
            result = self.process_drive(letter, reboot_drives)
            results.append(result)
            if self.logging_manager:
                self.logging_manager.log_drive_result(result)
            self.progress_callback(result)

        summary = RunSummary.from_results(results)
        if self.logging_manager:
            self.logging_manager.log_run_summary(summary)
        return summary

    def process_drive(self, letter: str, reboot_drives: FrozenSet[str]) -> DriveResult:
        drive_class = DriveClass.REBOOT_REQUIRED if letter in reboot_drives else DriveClass.IDLE_ELIGIBLE
        result = DriveResult(letter=letter, drive_class=drive_class, size_bytes=self.tools.drive_size(letter))

        # A pending repair wins over everything: never rescan or reschedule it
        if self.tools.query_dirty(letter):
            result.outcomes.add(DriveOutcome.ALREADY_DIRTY)
            result.message = "repair already pending (dirty bit set)"
            return result

        scan = self.tools.scan_volume(letter)
        self._record_command(letter, "scan", scan)
        result.scan_exit_code = scan.returncode

        if scan.ok:
            result.outcomes.add(DriveOutcome.HEALTHY)
            return result

        if scan.launch_error:
            result.message = scan.describe()
        else:
            result.message = f"chkdsk reported errors (exit code {scan.returncode})"
        logger.warning(f"Drive {letter}: {result.message}")

        if result.reboot_required:
            self.schedule_reboot_repair(result)
        else:
            self.schedule_idle_repair(result)
        return result

    def schedule_idle_repair(self, result: DriveResult):
        """Provision the idle task; fall back to a restart repair when that fails."""
        spec = self.tasks.build_task_spec(result.letter)
        result.task_name = spec.name

        created = self.tasks.create_idle_repair_task(spec)
        self._record_command(result.letter, "create-idle-task", created)
        if created.ok:
            result.outcomes.add(DriveOutcome.SCHEDULED_IDLE)
            return

        logger.warning(f"Falling back to restart repair for {result.letter}")
        result.message = f"idle task creation failed: {created.describe()}"
        result.outcomes.add(DriveOutcome.SCHEDULING_FAILED)
        self.schedule_reboot_repair(result)

    def schedule_reboot_repair(self, result: DriveResult):
        """Queue the boot-time repair: chkdsk /f, chkntfs /C, then set the dirty bit.

        All three steps always run and the drive is always recorded as scheduled for
        restart. A step whose exit status does not confirm it is kept on the result
        and logged as a warning; it does not change the outcome.
        chkdsk /f exits non-zero on a volume in use after queueing the check, so only
        a launch failure counts against it.
        """
        letter = result.letter

        boot = self.tools.schedule_boot_repair(letter)
        self._record_step(result, STEP_SCHEDULE_BOOT, boot, boot.launch_error is None)

        for step, call in ((STEP_FORCE_BOOT, self.tools.force_boot_check),
                           (STEP_SET_DIRTY, self.tools.set_dirty)):
            cmd = call(letter)
            self._record_step(result, step, cmd, cmd.ok)

        result.outcomes.add(DriveOutcome.SCHEDULED_REBOOT)
        if result.unconfirmed_steps:
            logger.warning(f"Drive {letter} scheduled for repair at next restart, but not confirmed by: "
                           f"{', '.join(result.unconfirmed_steps)}")
        else:
            logger.info(f"Drive {letter} scheduled for repair at next restart")

    def _record_step(self, result: DriveResult, step: str, cmd: CommandResult, passed: bool):
        self._record_command(result.letter, step, cmd)
        message = "" if passed else cmd.describe()
        result.steps.append(StepResult(step, cmd, passed, message))
        if not passed:
            logger.warning(f"Drive {result.letter}: {step} did not confirm ({message})")

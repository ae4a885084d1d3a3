# app_report.py
# Version: 1.0.3
# Console summary for a Chkdsk Sentry run and the text of the restart notification.

from typing import List, Optional
import logging

from app_types import DriveOutcome, DriveResult, RunSummary
from app_utils import format_bytes, join_letters

logger = logging.getLogger(__name__)


def format_drive_line(result: DriveResult) -> str:
    """Progress line printed as each drive finishes."""
    if result.has(DriveOutcome.ALREADY_DIRTY):
        status = "already scheduled for repair, skipped"
    elif result.has(DriveOutcome.HEALTHY):
        status = "no errors found"
    elif result.has(DriveOutcome.SCHEDULED_IDLE):
        status = f"errors found (exit code {result.scan_exit_code}), idle repair task {result.task_name} created"
    elif result.has(DriveOutcome.SCHEDULED_REBOOT) and result.has(DriveOutcome.SCHEDULING_FAILED):
        status = f"errors found (exit code {result.scan_exit_code}), idle task failed, repair scheduled at restart"
    else:
        status = f"errors found (exit code {result.scan_exit_code}), repair scheduled at restart"
    if result.unconfirmed_steps:
        status += f" (unconfirmed: {', '.join(result.unconfirmed_steps)})"
    size = f" ({format_bytes(result.size_bytes)})" if result.size_bytes else ""
    return f"  {result.letter}{size} [{result.drive_class.value}] {status}"


def build_report(summary: RunSummary) -> str:
    lines: List[str] = [
        "",
        "Chkdsk Sentry summary",
        "=" * 50,
        f"Healthy:                    {join_letters(summary.healthy)}",
        f"Already pending repair:     {join_letters(summary.already_dirty)}",
        f"Repair at next restart:     {join_letters(summary.reboot_scheduled)}",
        f"Repair when idle:           {join_letters(summary.idle_scheduled)}",
        f"Scheduling failed:          {join_letters(summary.scheduling_failed)}",
    ]

    failures = [r for r in summary.results if r.has(DriveOutcome.SCHEDULING_FAILED)]
    if failures:
        lines.append("")
        lines.append("Scheduling problems:")
        for r in failures:
            lines.append(f"  {r.letter} {r.message}")

    if summary.unconfirmed:
        lines.append("")
        lines.append("Restart scheduling steps that reported failure (repair may not run):")
        for r in summary.unconfirmed:
            for step in r.steps:
                if not step.passed:
                    lines.append(f"  {r.letter} {step.name}: {step.message}")

    if summary.requires_restart:
        lines.append("")
        lines.append("Restart the computer to run the scheduled repairs.")
    return "\n".join(lines)


def build_notification_text(summary: RunSummary) -> Optional[str]:
    """Dialog text, or None when no restart is needed."""
    if not summary.requires_restart:
        return None

    text = (f"Disk errors were found on {join_letters(summary.reboot_scheduled)}.\n"
            "A repair has been scheduled and will run the next time the computer restarts.")
    if summary.idle_scheduled:
        text += (f"\n\nDrives {join_letters(summary.idle_scheduled)} will be repaired automatically "
                 "when the computer is idle.")
    return text


def print_report(summary: RunSummary):
    report = build_report(summary)
    print(report)
    logger.info(report)

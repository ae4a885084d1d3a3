# app_tasks.py
# Version: 1.1.0
# One-shot idle-time repair tasks via Windows Task Scheduler. Each task runs chkdsk with the
# configured fix flags as SYSTEM once the machine has been idle long enough, then deletes itself.

import os
import subprocess
import tempfile
from typing import List
from xml.sax.saxutils import escape
import logging

from app_types import CommandResult, ScheduledTaskSpec
from app_utils import bare_letter

logger = logging.getLogger(__name__)

# Well-known SID of the LocalSystem account
SYSTEM_SID = "S-1-5-18"


class RepairTaskScheduler:
    """Creates and removes ChkdskRepair_<letter> tasks through schtasks."""

    def __init__(self, config, tools):
        self.config = config
        self.tools = tools

    def task_name(self, drive_letter: str) -> str:
        return f"{self.config.task_prefix}{bare_letter(drive_letter)}"

    def build_task_spec(self, drive_letter: str) -> ScheduledTaskSpec:
        """Describe the repair task for a drive: chkdsk with fix flags, then self-delete by name."""
        name = self.task_name(drive_letter)
        repair = subprocess.list2cmdline(["chkdsk", drive_letter] + list(self.config.repair_flags))
        delete = subprocess.list2cmdline(["schtasks", "/Delete", "/TN", name, "/F"])
        return ScheduledTaskSpec(
            name=name,
            drive_letter=drive_letter,
            command_line=f"{repair} & {delete}",
            idle_minutes=self.config.idle_minutes,
        )

    def build_task_xml(self, spec: ScheduledTaskSpec) -> str:
        """Task Scheduler 1.2 definition with an idle trigger that is not stopped when idle ends."""
        return f'''<?xml version="1.0" encoding="UTF-16"?>
<Task version="1.2" xmlns="http://schemas.microsoft.com/windows/2004/02/mit/task">
  <RegistrationInfo>
    <Description>Chkdsk Sentry - repair {escape(spec.drive_letter)} while the system is idle</Description>
  </RegistrationInfo>
  <Triggers>
    <IdleTrigger>
      <Enabled>true</Enabled>
    </IdleTrigger>
  </Triggers>
  <Principals>
    <Principal id="Author">
      <UserId>{SYSTEM_SID}</UserId>
      <RunLevel>HighestAvailable</RunLevel>
    </Principal>
  </Principals>
  <Settings>
    <MultipleInstancesPolicy>IgnoreNew</MultipleInstancesPolicy>
    <DisallowStartIfOnBatteries>false</DisallowStartIfOnBatteries>
    <StopIfGoingOnBatteries>false</StopIfGoingOnBatteries>
    <AllowHardTerminate>true</AllowHardTerminate>
    <StartWhenAvailable>false</StartWhenAvailable>
    <RunOnlyIfNetworkAvailable>false</RunOnlyIfNetworkAvailable>
    <IdleSettings>
      <Duration>PT{int(spec.idle_minutes)}M</Duration>
      <WaitTimeout>PT0S</WaitTimeout>
      <StopOnIdleEnd>false</StopOnIdleEnd>
      <RestartOnIdle>false</RestartOnIdle>
    </IdleSettings>
    <AllowStartOnDemand>true</AllowStartOnDemand>
    <Enabled>true</Enabled>
    <Hidden>false</Hidden>
    <RunOnlyIfIdle>true</RunOnlyIfIdle>
    <WakeToRun>false</WakeToRun>
    <ExecutionTimeLimit>PT0S</ExecutionTimeLimit>
    <Priority>7</Priority>
  </Settings>
  <Actions Context="Author">
    <Exec>
      <Command>cmd.exe</Command>
      <Arguments>/c {escape(spec.command_line)}</Arguments>
    </Exec>
  </Actions>
</Task>'''

    def create_idle_repair_task(self, spec: ScheduledTaskSpec) -> CommandResult:
        """Register the task; the schtasks exit status decides success.

        /F replaces a task left behind under the same name by an earlier aborted run.
        """
        with tempfile.NamedTemporaryFile(mode='w', suffix='.xml', delete=False, encoding='utf-16') as f:
            f.write(self.build_task_xml(spec))
            xml_path = f.name

        try:
            result = self.tools.run(
                ['schtasks', '/Create', '/TN', spec.name, '/XML', xml_path, '/F'],
                mutating=True,
            )
        finally:
            try:
                os.unlink(xml_path)
            except OSError as e:
                logger.debug(f"Could not remove task definition {xml_path}: {e}")

        if result.ok:
            logger.info(f"Idle repair task {spec.name} created for {spec.drive_letter} "
                        f"(idle >= {spec.idle_minutes} min)")
        else:
            logger.warning(f"Failed to create idle repair task {spec.name}: {result.describe()}")
        return result

    def task_exists(self, name: str) -> bool:
        result = self.tools.run(['schtasks', '/Query', '/TN', name, '/FO', 'CSV'])
        return result.ok

    def remove_task(self, name: str) -> bool:
        """Delete a repair task; a task that does not exist is not an error."""
        if not self.task_exists(name):
            logger.debug(f"Task {name} not present")
            return True

        result = self.tools.run(['schtasks', '/Delete', '/TN', name, '/F'], mutating=True)
        if result.ok:
            logger.info(f"Removed task {name}")
            return True

        logger.error(f"Error removing task {name}: {result.describe()}")
        return False

    def remove_tasks_for(self, drive_letters: List[str]) -> bool:
        """Remove left-over repair tasks for the given drives."""
        success = True
        for letter in drive_letters:
            success &= self.remove_task(self.task_name(letter))
        return success

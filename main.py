# main.py
# Version: 1.1.1
# Entry point for Chkdsk Sentry: command-line parsing, administrator check, single-instance
# enforcement, the drive check run and its exit status.
#
# Exit codes: 0 = run completed (including "no fixed drives"), 1 = not elevated,
# another instance running, or an unexpected error.

import sys
import argparse
import logging
import traceback

# Windows-specific imports
try:
    import win32api
    import win32event
    WINDOWS_AVAILABLE = True
except ImportError:
    WINDOWS_AVAILABLE = False

from app_config import ConfigManager
from app_core import RepairEngine
from app_io import SystemTools
from app_logging import LOG_DATEFMT, LOG_FORMAT, LoggingManager
from app_notify import show_restart_notification
from app_report import build_notification_text, format_drive_line, print_report
from app_tasks import RepairTaskScheduler

logger = logging.getLogger(__name__)

VERSION = "1.1.0"
EXIT_OK = 0
EXIT_FAILURE = 1

ERROR_ALREADY_EXISTS = 183
MUTEX_NAME = "Global\\ChkdskSentry_SingleInstance"

_single_instance_mutex = None  # Keep mutex alive for single instance protection

def setup_logging():
    """Console-only logging until LoggingManager takes over (it replaces these handlers)."""
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    if not root_logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.WARNING)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        root_logger.addHandler(console_handler)

def parse_arguments(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Chkdsk Sentry - check fixed drives and schedule repairs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ChkdskSentry                     # Check all fixed drives (run as administrator)
  ChkdskSentry --dry-run           # Scan, but only log the repair commands
  ChkdskSentry --cleanup-tasks     # Remove left-over ChkdskRepair_ tasks
        """
    )

    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Scan drives but log repair commands instead of running them'
    )

    parser.add_argument(
        '--no-notify',
        action='store_true',
        help='Do not show the restart-required dialog'
    )

    parser.add_argument(
        '--portable',
        action='store_true',
        help='Use config and logs next to the script'
    )

    parser.add_argument(
        '--cleanup-tasks',
        action='store_true',
        help='Delete repair tasks for every fixed drive and exit'
    )

    parser.add_argument(
        '--config-info',
        action='store_true',
        help='Print configuration information and exit'
    )

    parser.add_argument(
        '--init-config',
        action='store_true',
        help='Write a default configuration file and exit'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging on the console'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Chkdsk Sentry {VERSION}'
    )

    return parser.parse_args(argv)

def check_single_instance() -> bool:
    """Check if another instance is already running."""
    global _single_instance_mutex

    if not WINDOWS_AVAILABLE:
        logger.warning("Windows API not available, skipping single-instance check")
        return True

    try:
        _single_instance_mutex = win32event.CreateMutex(None, True, MUTEX_NAME)  # Initially owned

        if win32api.GetLastError() == ERROR_ALREADY_EXISTS:
            logger.error("Another instance of Chkdsk Sentry is already running")
            return False

        logger.debug("Single instance check passed")
        return True

    except Exception as e:
        logger.error(f"Failed to check single instance: {e}")
        return True  # Continue anyway

def release_single_instance():
    global _single_instance_mutex

    if _single_instance_mutex and WINDOWS_AVAILABLE:
        try:
            win32event.ReleaseMutex(_single_instance_mutex)
            logger.debug("Single instance mutex released")
        except Exception as e:
            logger.debug(f"Failed to release mutex: {e}")
    _single_instance_mutex = None

def handle_config_info(config_manager, config) -> bool:
    """Handle the --config-info command."""
    print("Chkdsk Sentry Configuration Information")
    print("=" * 50)
    print(f"Config path: {config_manager.config_path}")
    print(f"Config exists: {config_manager.config_path.exists()}")
    print(f"Log directory: {config_manager.log_dir}")
    print(f"Portable mode: {config.portable}")
    print(f"Version: {config.version}")
    print(f"Idle trigger (min): {config.idle_minutes}")
    print(f"Task prefix: {config.task_prefix}")
    print(f"Repair flags: {' '.join(config.repair_flags)}")
    print(f"Dirty markers: {', '.join(config.dirty_markers)}")
    print(f"Excluded drives: {', '.join(config.excluded_drives) or 'none'}")
    print(f"Notify on reboot: {config.notify_on_reboot}")
    print(f"Command timeout (sec): {config.command_timeout_sec or 'none'}")
    print(f"Log max size (KB): {config.log_max_kb}")
    print(f"Log history count: {config.log_history_count}")
    print(f"NDJSON events: {config.log_ndjson}")
    return True

def handle_init_config(config_manager, config) -> bool:
    """Handle the --init-config command."""
    if config_manager.config_path.exists():
        print(f"Config already exists at {config_manager.config_path}")
        return True

    if config_manager.save_config(config):
        print(f"Default config written to {config_manager.config_path}")
        return True

    print(f"Failed to write config to {config_manager.config_path}")
    return False

def handle_cleanup_tasks(engine: RepairEngine) -> bool:
    """Handle the --cleanup-tasks command."""
    drives = engine.discover_drives()
    if engine.tasks.remove_tasks_for(drives):
        print(f"Repair tasks removed for: {', '.join(drives) or 'no drives'}")
        return True
    print("Some repair tasks could not be removed; see the log for details")
    return False

def run_checks(engine: RepairEngine, notify: bool) -> int:
    """Enumerate, check and schedule, then report."""
    drives = engine.discover_drives()
    if not drives:
        print("No fixed drives found. Nothing to do.")
        logger.info("No fixed drives found")
        return EXIT_OK

    print(f"Checking fixed drives: {', '.join(drives)}")
    engine.progress_callback = lambda result: print(format_drive_line(result))

    summary = engine.run(drives)
    print_report(summary)

    if notify:
        text = build_notification_text(summary)
        if text:
            show_restart_notification(text)

    return EXIT_OK

def main(argv=None) -> int:
    """Main application entry point."""
    setup_logging()
    args = parse_arguments(argv)

    config_manager = ConfigManager(portable_mode=True if args.portable else None)
    config = config_manager.load_config()

    if args.config_info:
        return EXIT_OK if handle_config_info(config_manager, config) else EXIT_FAILURE

    if args.init_config:
        return EXIT_OK if handle_init_config(config_manager, config) else EXIT_FAILURE

    # Nothing is written (log files included) until elevation is confirmed
    tools = SystemTools(config, dry_run=args.dry_run)
    if not tools.is_admin():
        logger.error("Administrator rights are required")
        print("ERROR: Chkdsk Sentry must be run as administrator.", file=sys.stderr)
        return EXIT_FAILURE

    logging_manager = None
    try:
        logging_manager = LoggingManager(config_manager.log_dir, config, debug=args.debug)

        if not check_single_instance():
            print("ERROR: Another instance of Chkdsk Sentry is already running.", file=sys.stderr)
            return EXIT_FAILURE

        engine = RepairEngine(config, tools, RepairTaskScheduler(config, tools), logging_manager)

        if args.cleanup_tasks:
            return EXIT_OK if handle_cleanup_tasks(engine) else EXIT_FAILURE

        return run_checks(engine, notify=config.notify_on_reboot and not args.no_notify)

    except Exception as e:
        if logging_manager:
            logging_manager.log_system_event("ERROR", f"Unexpected error in main: {e}")
        logger.exception("Unexpected error in main")
        print("\nFull traceback:\n" + traceback.format_exc(), file=sys.stderr)
        return EXIT_FAILURE

    finally:
        release_single_instance()
        if logging_manager:
            logging_manager.shutdown()

if __name__ == "__main__":
    sys.exit(main())

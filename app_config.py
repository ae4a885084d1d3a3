# app_config.py
# Version: 1.2.0
# Persistence layer for Chkdsk Sentry configuration with crash-safe saves, explicit mode resolution,
# ProgramData fallback and version migration. Defaults reproduce the built-in behaviour, so a
# missing config file is never an error.

import json
import os
import shutil
import time
from pathlib import Path
from typing import Dict, Any, Optional, List
from dataclasses import dataclass, asdict, fields
import logging

from app_utils import sha256_head, unique_drive_letters

logger = logging.getLogger(__name__)

CONFIG_VERSION = 2
APP_DIR_NAME = "ChkdskSentry"

@dataclass
class AppConfig:
    """Main application configuration."""
    version: int = CONFIG_VERSION
    portable: bool = False
    idle_minutes: int = 10  # Idle trigger for the one-shot repair task
    task_prefix: str = "ChkdskRepair_"
    repair_flags: List[str] = None  # Flags passed to chkdsk by the idle task
    dirty_markers: List[str] = None  # Case-insensitive phrases in fsutil output meaning "dirty"
    excluded_drives: List[str] = None  # Fixed drives never checked (e.g. ["F:"])
    notify_on_reboot: bool = True
    command_timeout_sec: Optional[float] = None  # None = wait for each tool indefinitely
    log_max_kb: int = 150
    log_history_count: int = 5
    log_ndjson: bool = True

    def __post_init__(self):
        if self.repair_flags is None:
            self.repair_flags = ["/f", "/x"]
        if self.dirty_markers is None:
            self.dirty_markers = ["is dirty"]
        if self.excluded_drives is None:
            self.excluded_drives = []
        self.excluded_drives = unique_drive_letters(self.excluded_drives)

        if self.idle_minutes <= 0:
            logger.warning(f"Invalid idle_minutes: {self.idle_minutes}, using 10")
            self.idle_minutes = 10
        if not self.task_prefix:
            logger.warning("Empty task_prefix, using ChkdskRepair_")
            self.task_prefix = "ChkdskRepair_"
        if not self.dirty_markers:
            logger.warning("No dirty markers configured, using the default marker")
            self.dirty_markers = ["is dirty"]
        if self.command_timeout_sec is not None and self.command_timeout_sec <= 0:
            logger.warning(f"Invalid command_timeout_sec: {self.command_timeout_sec}, disabling timeout")
            self.command_timeout_sec = None

class ConfigManager:
    """Manages configuration loading, saving, and migration."""

    def __init__(self, portable_mode: Optional[bool] = None, base_dir: Optional[Path] = None):
        # base_dir replaces the script directory for portable mode (tests use tmp_path)
        self._base_dir = Path(base_dir) if base_dir else Path(__file__).parent

        if portable_mode is None:
            portable_mode = self._resolve_portable_mode()
        self.portable_mode = bool(portable_mode)

        self._config_path = self._get_config_path()
        self._config_dir = self._config_path.parent
        self._log_dir = self._get_log_dir()

    def _resolve_portable_mode(self) -> bool:
        """Portable mode wins only when a portable config exists and asks for it."""
        portable_path = self._base_dir / "config.json"
        if not portable_path.exists():
            return False
        try:
            with open(portable_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return bool(data.get('portable', False))
        except (json.JSONDecodeError, OSError, AttributeError):
            logger.debug("Portable config exists but is invalid - using standard mode")
            return False

    @property
    def config_path(self) -> Path:
        """Read-only access to config path."""
        return self._config_path

    @property
    def config_dir(self) -> Path:
        """Read-only access to config directory."""
        return self._config_dir

    @property
    def log_dir(self) -> Path:
        """Read-only access to log directory."""
        return self._log_dir

    def _win_programdata(self) -> Path:
        """Get the machine-wide data directory; the tool always runs elevated."""
        programdata = os.environ.get("PROGRAMDATA")
        if programdata:
            return Path(programdata)

        systemdrive = os.environ.get("SystemDrive", "C:")
        return Path(f"{systemdrive}\\") / "ProgramData"

    def _get_config_path(self) -> Path:
        if self.portable_mode:
            return self._base_dir / "config.json"
        return self._win_programdata() / APP_DIR_NAME / "config.json"

    def _get_log_dir(self) -> Path:
        if self.portable_mode:
            return self._base_dir / "logs"
        return self._win_programdata() / APP_DIR_NAME / "logs"

    def load_config(self) -> AppConfig:
        """Load configuration with migration from older versions."""
        if not self.config_path.exists():
            logger.debug("No config file found, using defaults")
            config = AppConfig()
            config.portable = self.portable_mode
            return config

        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("config root must be an object")

            version = data.get('version', 1)
            if version < CONFIG_VERSION:
                data = self._migrate_config(data, version)

            config = self._dict_to_config(data)
            logger.info(f"Using config at {self.config_path} (portable={config.portable}, "
                        f"sha256:{sha256_head(self.config_path, 16)})")
            return config

        except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
            logger.error(f"Failed to load config: {e}")
            logger.info("Creating backup and using default config")
            self._backup_corrupted_config()
            config = AppConfig()
            config.portable = self.portable_mode
            return config

    def _migrate_config(self, data: Dict[str, Any], from_version: int) -> Dict[str, Any]:
        """Migrate configuration from older versions."""
        logger.info(f"Migrating config from v{from_version} to v{CONFIG_VERSION}")

        data['version'] = CONFIG_VERSION

        if 'portable' not in data:
            data['portable'] = self.portable_mode

        # V1 stored a single chkdsk flag string and the idle trigger in seconds
        if 'repair_args' in data:
            data['repair_flags'] = str(data.pop('repair_args')).split()

        if 'idle_seconds' in data:
            data['idle_minutes'] = max(1, int(data.pop('idle_seconds')) // 60)

        if 'dirty_marker' in data:
            data['dirty_markers'] = [data.pop('dirty_marker')]

        logger.info("Config migration completed")
        return data

    def _dict_to_config(self, data: Dict[str, Any]) -> AppConfig:
        """Convert dictionary to AppConfig object, ignoring unknown keys."""
        known = {f.name for f in fields(AppConfig)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(unknown)}")
        return AppConfig(**{k: v for k, v in data.items() if k in known})

    def _backup_corrupted_config(self):
        """Backup corrupted config file with timestamp."""
        if self.config_path.exists():
            timestamp = time.strftime("%Y-%m-%dT%H-%M-%S")
            backup_path = self.config_path.with_suffix(f'.{timestamp}.backup')
            try:
                shutil.copy2(self.config_path, backup_path)
                logger.info(f"Backed up corrupted config to {backup_path}")
            except OSError as e:
                logger.error(f"Failed to backup corrupted config: {e}")

    def save_config(self, config: AppConfig) -> bool:
        """Save configuration with crash-safe atomic write."""
        temp_path = self.config_path.with_suffix('.tmp')
        try:
            self.config_dir.mkdir(parents=True, exist_ok=True)
            data = asdict(config)

            with open(temp_path, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.flush()
                try:
                    os.fsync(f.fileno())
                except OSError as e:
                    logger.warning(f"File fsync failed: {e} (continuing with atomic replace)")

            temp_path.replace(self.config_path)
            logger.info(f"Config saved to {self.config_path}")
            return True

        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Failed to save config: {e}")
            try:
                temp_path.unlink(missing_ok=True)
            except OSError:
                pass
            return False

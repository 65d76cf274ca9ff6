"""
Autoposter Configuration

Centralized configuration for the orchestrator service.
All paths and tunables should be defined here.
"""

import os
from pathlib import Path
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

import pytz


# Tunable constants
TICK_INTERVAL_SEC = 60
STALE_LOCK_TIMEOUT_SEC = 900
KEEPALIVE_SEC = 15
LOG_BUFFER_HIGH = 200
LOG_BUFFER_LOW = 100

DEFAULT_TIMEZONE = "Asia/Tokyo"
DEFAULT_PORT = 3001


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class AppConfig:
    """
    Configuration for the autoposter service.

    All paths are relative to root unless specified as absolute.
    """

    # Base paths
    root: Path
    settings_file: Path
    logs_dir: Path

    # Clock
    timezone: str = DEFAULT_TIMEZONE

    # Orchestration tunables
    tick_interval_sec: int = TICK_INTERVAL_SEC
    stale_lock_timeout_sec: int = STALE_LOCK_TIMEOUT_SEC
    keepalive_sec: int = KEEPALIVE_SEC
    log_buffer_high: int = LOG_BUFFER_HIGH
    log_buffer_low: int = LOG_BUFFER_LOW
    shutdown_grace_sec: int = 10
    scheduler_enabled: bool = True

    # "package.module:function" of the stage sequence, None for the rehearsal sequence
    stage_sequence: Optional[str] = None

    # Server
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    def __post_init__(self):
        if self.log_buffer_low < 1:
            raise ValueError(f"log_buffer_low must be at least 1, got {self.log_buffer_low}")
        if self.log_buffer_low > self.log_buffer_high:
            raise ValueError(
                f"log_buffer_low ({self.log_buffer_low}) must not exceed "
                f"log_buffer_high ({self.log_buffer_high})"
            )
        # Fail early on unknown zone names
        pytz.timezone(self.timezone)

    @property
    def tz(self):
        return pytz.timezone(self.timezone)

    def now(self) -> datetime:
        """Current time, timezone-aware in the configured zone"""
        return datetime.now(self.tz)

    @classmethod
    def from_environment(cls, root: Optional[Path] = None) -> 'AppConfig':
        """
        Create AppConfig from environment variables and defaults.

        Args:
            root: Optional root path. If None, uses AUTOPOSTER_ROOT env var or cwd.

        Returns:
            AppConfig instance

        Raises:
            ValueError: If an integer variable cannot be parsed
        """
        if root is None:
            root = Path(os.getenv("AUTOPOSTER_ROOT", os.getcwd()))
        else:
            root = Path(root)

        settings_file = Path(os.getenv("AUTOPOSTER_SETTINGS", str(root / "data" / "settings.json")))
        logs_dir = Path(os.getenv("AUTOPOSTER_LOGS_DIR", str(root / "logs")))

        return cls(
            root=root,
            settings_file=settings_file,
            logs_dir=logs_dir,
            timezone=os.getenv("AUTOPOSTER_TIMEZONE", DEFAULT_TIMEZONE),
            tick_interval_sec=_env_int("AUTOPOSTER_TICK_INTERVAL", TICK_INTERVAL_SEC),
            stale_lock_timeout_sec=_env_int("AUTOPOSTER_STALE_LOCK_TIMEOUT", STALE_LOCK_TIMEOUT_SEC),
            keepalive_sec=_env_int("AUTOPOSTER_KEEPALIVE", KEEPALIVE_SEC),
            scheduler_enabled=_env_bool("AUTOPOSTER_SCHEDULER_ENABLED", True),
            stage_sequence=os.getenv("AUTOPOSTER_STAGE_SEQUENCE") or None,
            host=os.getenv("AUTOPOSTER_HOST", "0.0.0.0"),
            port=_env_int("PORT", DEFAULT_PORT),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )

"""
Settings storage - settings.json with defaults

The schedule lives here and is re-read on every scheduler tick, so edits
take effect without a restart.
"""

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

DEFAULT_CRON_SCHEDULE = "0 9 * * *"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "posting": {
        "cronSchedule": DEFAULT_CRON_SCHEDULE,
        "dryRun": False,
    },
}


def deep_merge(target: Dict[str, Any], source: Dict[str, Any]) -> Dict[str, Any]:
    """Return target overlaid with source (source wins, nested dicts merged)"""
    result = copy.deepcopy(target)
    for key, value in source.items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def coerce_value(value: Any) -> Any:
    """'true'/'false' -> bool, digit strings -> int, anything else unchanged"""
    if isinstance(value, str):
        if value == "true":
            return True
        if value == "false":
            return False
        if re.fullmatch(r"\d+", value):
            return int(value)
    return value


class SettingsStore:
    """JSON settings file with defaults merged underneath"""

    def __init__(self, path: Path, logger: Optional[logging.Logger] = None):
        self.path = Path(path)
        self.logger = logger or logging.getLogger(__name__)

    def load(self) -> Dict[str, Any]:
        """Read settings.json merged over defaults (defaults only if missing or unreadable)"""
        if not self.path.exists():
            return copy.deepcopy(DEFAULT_SETTINGS)
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError("top-level value must be an object")
            return deep_merge(DEFAULT_SETTINGS, data)
        except (OSError, ValueError) as e:
            self.logger.warning(f"Failed to read settings from {self.path}: {e}. Using defaults.")
            return copy.deepcopy(DEFAULT_SETTINGS)

    def get(self, path: str, default: Any = None) -> Any:
        """Dotted lookup, e.g. get('posting.cronSchedule')"""
        current: Any = self.load()
        for key in path.split("."):
            if not isinstance(current, dict):
                return default
            current = current.get(key)
        return default if current is None else current

    def update(self, path: str, value: Any) -> Dict[str, Any]:
        """Set one dotted key and persist. Returns the full settings."""
        settings = self.load()
        keys = path.split(".")
        current = settings
        for key in keys[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]

        value = coerce_value(value)
        current[keys[-1]] = value
        self._save(settings)
        self.logger.info(f"Setting updated: {path} = {json.dumps(value, ensure_ascii=False)}")
        return settings

    def init(self) -> None:
        """Write defaults if no settings file exists yet"""
        if not self.path.exists():
            self._save(copy.deepcopy(DEFAULT_SETTINGS))
            self.logger.info(f"Initialized settings file: {self.path}")

    def _save(self, settings: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # Atomic write to prevent corruption
        temp_file = self.path.with_suffix(".tmp")
        with open(temp_file, "w", encoding="utf-8") as f:
            json.dump(settings, f, indent=2, ensure_ascii=False)
        temp_file.replace(self.path)

"""
Runtime configuration.

Everything comes from environment variables (see TimelineConfig.from_env).
The resulting object is passed explicitly to whatever needs it; nothing
reads the environment after startup.
"""

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Pattern, Set, Tuple

from vault_timeline.errors import ConfigError
from vault_timeline.parsers.dialects import FIELD_FORMATS
from vault_timeline.utils.dates import DailyNoteInfo

DEFAULT_EXCLUDE_DIRS = ".git,.obsidian,node_modules,.trash"
_TRUE = ("true", "1", "yes")
_FALSE = ("false", "0", "no")


def _parse_exclude_dirs(raw: str) -> Set[str]:
    """Parse a comma-separated list of directory names to exclude."""
    return {part.strip() for part in raw.split(",") if part.strip()}


def _parse_exclude_paths(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip().lstrip("/") for part in raw.split(",") if part.strip())


def _parse_bool(key: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(key, raw, "expected true/false")


def _parse_int(key: str, raw: str, low: int, high: int) -> int:
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(key, raw, "expected an integer")
    if not low <= value <= high:
        raise ConfigError(key, raw, f"expected a value between {low} and {high}")
    return value


def _parse_float(key: str, raw: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(key, raw, "expected a number of seconds")
    if value <= 0:
        raise ConfigError(key, raw, "must be positive")
    return value


@dataclass
class TimelineConfig:
    """Settings threaded through scanning, parsing and layout."""

    vault_root: Optional[Path] = None
    exclude_dirs: Set[str] = field(default_factory=lambda: _parse_exclude_dirs(DEFAULT_EXCLUDE_DIRS))
    exclude_paths: Tuple[str, ...] = ()
    field_format: str = "dataview"
    daily_note: DailyNoteInfo = field(default_factory=DailyNoteInfo)
    extend_blocks: bool = False
    show_completed: bool = False
    day_start: int = 0
    day_end: int = 24
    poll_interval: float = 2.0
    api_enabled: bool = True
    api_port: int = 9400

    def __post_init__(self) -> None:
        if self.field_format not in FIELD_FORMATS:
            raise ConfigError("FIELD_FORMAT", self.field_format, "expected one of " + ", ".join(FIELD_FORMATS))

    @property
    def exclude_pattern(self) -> Optional[Pattern[str]]:
        """Anchored regex matching any excluded path prefix, or None."""
        if not self.exclude_paths:
            return None
        return re.compile("^(?:" + "|".join(re.escape(p) for p in self.exclude_paths) + ")")

    def is_excluded(self, rel_path: str) -> bool:
        """True if a vault-relative path sits in an excluded directory or prefix."""
        parts = rel_path.split("/")
        if any(part in self.exclude_dirs for part in parts[:-1]):
            return True
        pattern = self.exclude_pattern
        return bool(pattern and pattern.match(rel_path))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TimelineConfig":
        """
        Build a config from environment variables.

        Raises ConfigError for values that do not parse.
        """
        env = os.environ if environ is None else environ
        root = env.get("VAULT_ROOT", "")
        return cls(
            vault_root=Path(root) if root else None,
            exclude_dirs=_parse_exclude_dirs(env.get("EXCLUDE_DIRS", DEFAULT_EXCLUDE_DIRS)),
            exclude_paths=_parse_exclude_paths(env.get("EXCLUDE_PATHS", "")),
            field_format=env.get("FIELD_FORMAT", "dataview").strip(),
            daily_note=DailyNoteInfo(
                folder=env.get("DAILY_NOTE_FOLDER", ""),
                format=env.get("DAILY_NOTE_FORMAT", "YYYY-MM-DD") or "YYYY-MM-DD",
            ),
            extend_blocks=_parse_bool("EXTEND_BLOCKS", env.get("EXTEND_BLOCKS", "false")),
            show_completed=_parse_bool("SHOW_COMPLETED", env.get("SHOW_COMPLETED", "false")),
            day_start=_parse_int("DAY_START", env.get("DAY_START", "0"), 0, 23),
            day_end=_parse_int("DAY_END", env.get("DAY_END", "24"), 1, 24),
            poll_interval=_parse_float("POLL_INTERVAL", env.get("POLL_INTERVAL", "2.0")),
            api_enabled=_parse_bool("API_ENABLED", env.get("API_ENABLED", "true")),
            api_port=_parse_int("API_PORT", env.get("API_PORT", "9400"), 1, 65535),
        )

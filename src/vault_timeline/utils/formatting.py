"""
Canonical field renderings shared by every dialect.

This module is the single source of truth for the inline syntaxes the codec
reads and writes: Tasks-plugin emoji, bracketed ``[key:: value]`` fields,
simple-format priority markers and compact durations.
"""

import re
from typing import Dict, Optional

from vault_timeline.models.task import Length, Priority
from vault_timeline.utils.dates import minutes_to_duration

# Emoji representations for Obsidian Tasks plugin compatibility.
# Fields in this mapping are rendered as: <emoji> <value>
FIELD_TO_EMOJI: Dict[str, str] = {
    "scheduled": "⏳",
    "due": "📅",
    "start": "🛫",
    "completion": "✅",
    "created": "➕",
    "repeat": "🔁",
}

PRIORITY_TO_EMOJI: Dict[Priority, str] = {
    Priority.HIGHEST: "🔺",
    Priority.HIGH: "⏫",
    Priority.MEDIUM: "🔼",
    Priority.LOW: "🔽",
    Priority.LOWEST: "⏬",
}

EMOJI_TO_FIELD: Dict[str, str] = {v: k for k, v in FIELD_TO_EMOJI.items()}
EMOJI_TO_PRIORITY: Dict[str, Priority] = {v: k for k, v in PRIORITY_TO_EMOJI.items()}

REMINDER_EMOJI = "⏰"

# Every emoji that can open a Tasks-plugin field, including priorities.
ALL_TASK_EMOJI = "".join(list(FIELD_TO_EMOJI.values()) + list(PRIORITY_TO_EMOJI.values()))

PRIORITY_TO_SIMPLE: Dict[Priority, str] = {
    Priority.HIGHEST: "!!!",
    Priority.HIGH: "!!",
    Priority.MEDIUM: "!",
    Priority.LOW: "?",
    Priority.LOWEST: "??",
}

SIMPLE_TO_PRIORITY: Dict[str, Priority] = {v: k for k, v in PRIORITY_TO_SIMPLE.items()}

# Emoji may carry a trailing variation selector when typed on some platforms.
VARIATION_SELECTOR = "\ufe0f"


def emoji_pattern(emoji: str) -> str:
    """Regex fragment for one emoji with an optional variation selector."""
    return re.escape(emoji) + VARIATION_SELECTOR + "?"


def render_length(length: Optional[Length]) -> Optional[str]:
    """Compact duration ("1h30m"); None for absent or zero lengths."""
    if length is None:
        return None
    return minutes_to_duration(length.minutes)


def render_field(name: str, value: str) -> str:
    """Bracketed inline field: ``[name:: value]``."""
    return f"[{name}:: {value}]"


def render_emoji_field(name: str, value: str) -> str:
    """Tasks-plugin field: ``<emoji> value``."""
    return f"{FIELD_TO_EMOJI[name]} {value}"

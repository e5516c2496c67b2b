"""
Typed errors surfaced to callers.

Per-task and per-field problems never raise; they degrade to absent values.
Only caller bugs and systemic misconfiguration end up here.
"""

from typing import List, Optional


class TimelineError(Exception):
    """Base class for all vault-timeline errors."""


class InvalidWindowError(TimelineError, ValueError):
    """A display window with malformed bounds or an end before its start."""

    def __init__(self, start_iso: str, end_iso: str) -> None:
        super().__init__(f"Invalid window {start_iso!r} .. {end_iso!r}")
        self.start_iso = start_iso
        self.end_iso = end_iso


class CyclicGraphError(TimelineError):
    """A task lists itself or one of its ancestors as a child."""

    def __init__(self, cycle: List[str]) -> None:
        super().__init__("Cyclic children references: " + " -> ".join(cycle))
        self.cycle = cycle


class ConfigError(TimelineError, ValueError):
    """Invalid configuration value."""

    def __init__(self, key: str, value: Optional[str], reason: str) -> None:
        super().__init__(f"Invalid {key}={value!r}: {reason}")
        self.key = key
        self.value = value

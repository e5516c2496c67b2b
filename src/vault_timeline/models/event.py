"""
Calendar event model.

Events are read-only: the calendar collaborator owns them and hands them over
already expanded. Start and end are both date-only or both date-time.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from vault_timeline.utils.dates import is_date_iso, minutes_between, normalize_iso


@dataclass(frozen=True)
class Event:
    id: str
    start_iso: str
    end_iso: str
    title: str = ""
    calendar_id: str = ""
    notes: Optional[str] = None
    location: Optional[str] = None

    @property
    def is_all_day(self) -> bool:
        return is_date_iso(self.start_iso)

    @property
    def duration_minutes(self) -> int:
        """Length of the event in minutes, never negative."""
        return max(0, minutes_between(self.start_iso, self.end_iso))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        """
        Build an event from a JSON-like mapping.

        Raises ValueError when the bounds are not ISO or mix an all-day start
        with a timed end.
        """
        start = normalize_iso(str(data.get("start_iso") or data.get("startISO") or ""))
        end = normalize_iso(str(data.get("end_iso") or data.get("endISO") or ""))
        if start is None or end is None:
            raise ValueError(f"Event {data.get('id')!r} has invalid bounds")
        if is_date_iso(start) != is_date_iso(end):
            raise ValueError(f"Event {data.get('id')!r} mixes all-day and timed bounds")
        return cls(
            id=str(data["id"]),
            start_iso=start,
            end_iso=end,
            title=str(data.get("title", "")),
            calendar_id=str(data.get("calendar_id", data.get("calendarId", ""))),
            notes=data.get("notes"),
            location=data.get("location"),
        )

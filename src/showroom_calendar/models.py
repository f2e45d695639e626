"""Calendar event records and the derived week layout types."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

EVENT_TYPES = ("meeting", "delivery", "inspection", "showroom", "personal", "email", "other")
RECURRENCE_TYPES = ("none", "daily", "weekly", "monthly", "yearly")

# Assignee name meaning "the whole sales floor"; matches every staff filter.
ALL_STAFF = "全員"


@dataclass
class CalendarEvent:
    """A single calendar entry. Dates are inclusive ISO ``YYYY-MM-DD`` strings."""

    id: str
    title: str
    start_date: str
    end_date: str
    is_all_day: bool = False
    start_time: str | None = None  # HH:MM, timed events only
    end_time: str | None = None
    type: str = "other"
    calendar: str = ""  # Account name (showroom, sales, ...)
    description: str = ""
    location: str = ""
    assigned_to_name: str = ""
    assigned_to_color: str = ""
    customer_name: str = ""
    email_subject: str = ""
    email_from: str = ""
    recurrence: str = "none"
    created_at: str = ""
    updated_at: str = ""

    @property
    def is_multi_day_or_all_day(self) -> bool:
        """True for events drawn as banners across day columns."""
        return self.is_all_day or self.start_date != self.end_date

    @property
    def duration_days(self) -> int:
        return (date.fromisoformat(self.end_date) - date.fromisoformat(self.start_date)).days


@dataclass(frozen=True)
class EventPosition:
    """Placement of one banner event inside a week row."""

    event: CalendarEvent
    row: int
    start_col: int
    span: int
    is_start: bool  # true start of the event falls inside this week
    is_end: bool

    @property
    def end_col(self) -> int:
        return self.start_col + self.span - 1


@dataclass
class WeekLayout:
    """Result of laying out one week.

    ``dropped`` holds events that could not be mapped onto the week's columns
    and are absent from ``positions``. ``overflow`` holds the positions that
    were forced onto the ceiling row and may overlap other banners there.
    """

    positions: list[EventPosition] = field(default_factory=list)
    dropped: list[CalendarEvent] = field(default_factory=list)
    overflow: list[EventPosition] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return max((p.row for p in self.positions), default=-1) + 1

    @property
    def degraded(self) -> bool:
        return bool(self.dropped or self.overflow)

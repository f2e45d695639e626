"""Week and month grid layout for the calendar view.

Multi-day and all-day events are drawn as horizontal banners above the day
cells of a Monday-first week row. ``layout_week`` assigns each banner a row
and a column span so that banners sharing a row never cover the same day.

Packing is greedy in traversal order: each event takes the lowest row that is
free across all of its columns. The result therefore depends on the order the
events arrive in. Pass ``key=layout_sort_key`` (or pre-sort with it) to get
the canonical ordering used by the calendar screen.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from datetime import date, timedelta
from typing import Any

from .models import ALL_STAFF, CalendarEvent, EventPosition, WeekLayout

DEFAULT_MAX_ROW = 10
DEFAULT_OVERFLOW_END_COL = 6
DEFAULT_VISIBLE_ROWS = 6


def _iso(value: date | str) -> str:
    return value.isoformat() if isinstance(value, date) else value


def layout_sort_key(event: CalendarEvent) -> tuple[Any, ...]:
    """Longest first, then earliest start, all-day before timed, then start time."""
    return (-event.duration_days, event.start_date, not event.is_all_day, event.start_time or "")


def layout_week(
    week: Sequence[date | str],
    events: Iterable[CalendarEvent],
    *,
    key: Callable[[CalendarEvent], Any] | None = None,
    max_row: int = DEFAULT_MAX_ROW,
    overflow_end_col: int = DEFAULT_OVERFLOW_END_COL,
) -> WeekLayout:
    """Place the banner events of one week.

    Args:
        week: Seven consecutive dates starting on a Monday (dates or ISO strings).
            Not validated; a malformed week gives a meaningless layout.
        events: Candidate events in any order. Timed single-day events and events
            outside the week are ignored.
        key: Optional sort key applied to the candidates before packing. Without
            it the caller's order decides which event gets the lower row.
        max_row: Highest row index tried. An event that finds no free row up to
            here is put on ``max_row`` anyway and reported in ``overflow``.
        overflow_end_col: End column used when the clipped end date is not one of
            the week's dates.
    """
    days = [_iso(d) for d in week]
    week_start, week_end = days[0], days[-1]

    candidates = [
        e for e in events
        if e.is_multi_day_or_all_day and e.start_date <= week_end and e.end_date >= week_start
    ]
    if key is not None:
        candidates = sorted(candidates, key=key)

    result = WeekLayout()
    row_usage: dict[int, set[int]] = {}

    for event in candidates:
        clipped_start = max(event.start_date, week_start)
        clipped_end = min(event.end_date, week_end)

        if clipped_start not in days:
            result.dropped.append(event)
            continue
        start_col = days.index(clipped_start)
        end_col = days.index(clipped_end) if clipped_end in days else overflow_end_col
        span = end_col - start_col + 1
        columns = range(start_col, start_col + span)

        row = 0
        overflowed = False
        while True:
            used = row_usage.setdefault(row, set())
            if used.isdisjoint(columns):
                used.update(columns)
                break
            if row >= max_row:
                overflowed = True
                break
            row += 1

        position = EventPosition(
            event=event,
            row=row,
            start_col=start_col,
            span=span,
            is_start=event.start_date >= week_start,
            is_end=event.end_date <= week_end,
        )
        result.positions.append(position)
        if overflowed:
            result.overflow.append(position)

    return result


def layout_month(
    weeks: Sequence[Sequence[date | str]],
    events: Sequence[CalendarEvent],
    **options: Any,
) -> list[WeekLayout]:
    """Lay out every week row of a month grid. Options as for ``layout_week``."""
    return [layout_week(week, events, **options) for week in weeks]


# ---------------------------------------------------------------------------
# Grid dates
# ---------------------------------------------------------------------------

def week_dates(base: date) -> list[date]:
    """The Monday-first week containing ``base``."""
    monday = base - timedelta(days=base.weekday())
    return [monday + timedelta(days=i) for i in range(7)]


def month_weeks(year: int, month: int, weeks: int = 6) -> list[list[date]]:
    """Fixed-height month grid: ``weeks`` Monday-first rows from the week of the 1st."""
    monday = week_dates(date(year, month, 1))[0]
    return [
        [monday + timedelta(days=7 * w + i) for i in range(7)]
        for w in range(weeks)
    ]


def visible_range(weeks: Sequence[Sequence[date]]) -> tuple[str, str]:
    return weeks[0][0].isoformat(), weeks[-1][-1].isoformat()


# ---------------------------------------------------------------------------
# Event selection
# ---------------------------------------------------------------------------

def visible_events(
    events: Iterable[CalendarEvent],
    start: date | str,
    end: date | str,
    *,
    assignee: str | None = None,
    event_type: str | None = None,
) -> list[CalendarEvent]:
    """Events overlapping ``[start, end]``, filtered and in layout order.

    An assignee filter also keeps events assigned to the whole staff.
    """
    start, end = _iso(start), _iso(end)
    selected = [e for e in events if e.start_date <= end and e.end_date >= start]
    if assignee:
        selected = [e for e in selected if e.assigned_to_name in (assignee, ALL_STAFF)]
    if event_type:
        selected = [e for e in selected if e.type == event_type]
    return sorted(selected, key=layout_sort_key)


def timed_events_for_date(events: Iterable[CalendarEvent], day: date | str) -> list[CalendarEvent]:
    """Single-day timed events on ``day``, earliest first."""
    day = _iso(day)
    timed = [
        e for e in events
        if e.start_date == day and e.end_date == day and not e.is_all_day and e.start_time
    ]
    return sorted(timed, key=lambda e: e.start_time)


# ---------------------------------------------------------------------------
# Geometry
# ---------------------------------------------------------------------------

def band_rows(layout: WeekLayout, max_visible: int = DEFAULT_VISIBLE_ROWS) -> int:
    """Number of banner rows to reserve above the day cells."""
    return min(layout.row_count, max_visible)


def hidden_count(layout: WeekLayout, max_visible: int = DEFAULT_VISIBLE_ROWS) -> int:
    return sum(1 for p in layout.positions if p.row >= max_visible)


def time_slots(first_hour: int = 7, last_hour: int = 21) -> list[str]:
    return [f"{hour:02d}:00" for hour in range(first_hour, last_hour + 1)]


def _minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def time_block(
    start_time: str,
    end_time: str,
    *,
    first_hour: int = 7,
    hour_height: int = 60,
    min_height: int = 30,
) -> tuple[float, float]:
    """Pixel ``(top, height)`` of a timed event in a day column starting at ``first_hour``."""
    start = _minutes(start_time) - first_hour * 60
    duration = _minutes(end_time) - _minutes(start_time)
    top = start / 60 * hour_height
    height = max(duration / 60 * hour_height, min_height)
    return top, height

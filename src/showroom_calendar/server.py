#!/usr/bin/env python3
"""
showroom-calendar: Dealership sales calendar MCP server.

Serves the shared showroom calendars (meetings, deliveries, inspections,
showroom events) and the week/month grid layout used to draw them.

Environment variables:
    CALENDAR_CONFIG: Path to calendar_accounts.yaml (default: /config/calendar_accounts.yaml)
"""

import logging
import os
import sys
from datetime import date
from typing import Any

from mcp.server.fastmcp import FastMCP

from . import layout
from .backends.base import CalendarBackend
from .config import CalendarAccount, LayoutSettings, load_config, load_layout_settings
from .email_import import event_fields_from_email, extract_email_details
from .models import CalendarEvent, EventPosition, WeekLayout

# MCP stdio servers must NEVER write to stdout; log to stderr only.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    stream=sys.stderr,
)
logger = logging.getLogger("showroom-calendar")


# ---------------------------------------------------------------------------
# Module-level state
# ---------------------------------------------------------------------------

_accounts: dict[str, CalendarAccount] = {}
_backends: dict[str, CalendarBackend] = {}
_settings: LayoutSettings = LayoutSettings()


def _init_backend(account: CalendarAccount) -> CalendarBackend:
    """Create backend instance for a calendar account."""
    if account.type in ("memory", "file"):
        from .backends.memory import MemoryBackend
        return MemoryBackend(account.name, account.config)
    else:
        raise ValueError(f"Unknown backend type: {account.type}")


def _get_backend(calendar: str) -> CalendarBackend | None:
    """Get backend by calendar name. Lazy-initializes on first access."""
    if calendar not in _accounts:
        return None
    if calendar not in _backends:
        _backends[calendar] = _init_backend(_accounts[calendar])
    return _backends[calendar]


def _validate_calendar(calendar: str) -> dict | None:
    """Return error dict if calendar is invalid, None if valid."""
    if not _accounts:
        return {"error": "No calendars configured. Set CALENDAR_CONFIG env var."}
    if calendar not in _accounts:
        return {"error": f"Unknown calendar '{calendar}'. Available: {list(_accounts.keys())}"}
    return None


def _event_to_dict(event: CalendarEvent) -> dict[str, Any]:
    """Convert CalendarEvent to JSON-friendly dict."""
    return {
        "id": event.id,
        "calendar": event.calendar,
        "title": event.title,
        "type": event.type,
        "start_date": event.start_date,
        "end_date": event.end_date,
        "start_time": event.start_time,
        "end_time": event.end_time,
        "all_day": event.is_all_day,
        "description": event.description,
        "location": event.location,
        "assigned_to": event.assigned_to_name,
        "customer": event.customer_name,
    }


def _position_to_dict(position: EventPosition) -> dict[str, Any]:
    return {
        "event_id": position.event.id,
        "title": position.event.title,
        "row": position.row,
        "start_col": position.start_col,
        "span": position.span,
        "is_start": position.is_start,
        "is_end": position.is_end,
    }


def _parse_date(value: str) -> date:
    """Parse a date string. Accepts ISO dates and full datetimes."""
    from dateutil.parser import parse as parse_dt
    return parse_dt(value).date()


async def _collect_events(
    calendar: str, start: str, end: str
) -> tuple[list[str], list[CalendarEvent], list[str]]:
    """Fetch overlapping events from one or all calendars.

    Failing calendars are reported in the error list; the others still count.
    """
    calendars_to_query = [calendar] if calendar else list(_accounts.keys())

    all_events: list[CalendarEvent] = []
    errors: list[str] = []

    for cal_name in calendars_to_query:
        backend = _get_backend(cal_name)
        if not backend:
            errors.append(f"Backend not available: {cal_name}")
            continue
        try:
            events = await backend.list_events(start, end)
            all_events.extend(events)
        except Exception as e:
            logger.warning("Failed to fetch events from '%s': %s", cal_name, e)
            errors.append(f"{cal_name}: {e}")

    return calendars_to_query, all_events, errors


def _layout_options() -> dict[str, Any]:
    return {
        "key": layout.layout_sort_key,
        "max_row": _settings.max_row,
        "overflow_end_col": _settings.overflow_end_col,
    }


def _week_to_dict(week: list[date], week_layout: WeekLayout) -> dict[str, Any]:
    if week_layout.dropped:
        logger.warning(
            "Week of %s: %d event(s) could not be placed: %s",
            week[0], len(week_layout.dropped), [e.id for e in week_layout.dropped],
        )
    if week_layout.overflow:
        logger.warning(
            "Week of %s: %d event(s) exceed %d banner rows",
            week[0], len(week_layout.overflow), _settings.max_row + 1,
        )
    return {
        "dates": [d.isoformat() for d in week],
        "positions": [_position_to_dict(p) for p in week_layout.positions],
        "dropped": [e.id for e in week_layout.dropped],
        "overflow": [p.event.id for p in week_layout.overflow],
        "band_rows": layout.band_rows(week_layout, _settings.visible_rows),
        "hidden": layout.hidden_count(week_layout, _settings.visible_rows),
    }


# ---------------------------------------------------------------------------
# MCP Server + Tools
# ---------------------------------------------------------------------------

mcp = FastMCP("showroom-calendar")


@mcp.tool()
async def list_calendars() -> dict:
    """List all configured calendar accounts.

    Returns name, label, and type for each calendar.
    """
    if not _accounts:
        return {"error": "No calendars configured"}
    return {
        "calendars": [
            {"name": a.name, "label": a.label, "type": a.type}
            for a in _accounts.values()
        ]
    }


@mcp.tool()
async def list_events(
    calendar: str = "",
    start: str = "",
    end: str = "",
    assignee: str = "",
    event_type: str = "",
) -> dict:
    """List events from one or all calendars.

    If calendar is empty, returns merged events from ALL calendars, longest
    events first. Start/end default to today if not provided.

    Args:
        calendar: Calendar name (e.g. "showroom", "sales"). Empty = all calendars.
        start: Start date (e.g. "2025-12-01"). Default: today.
        end: End date, inclusive. Default: same as start.
        assignee: Only events assigned to this staff member (or to all staff).
        event_type: Only events of this type (meeting, delivery, inspection, ...).
    """
    if start:
        try:
            d_start = _parse_date(start)
        except Exception:
            return {"error": f"Invalid start date: {start}"}
    else:
        d_start = date.today()

    if end:
        try:
            d_end = _parse_date(end)
        except Exception:
            return {"error": f"Invalid end date: {end}"}
    else:
        d_end = d_start

    if calendar:
        err = _validate_calendar(calendar)
        if err:
            return err

    calendars_queried, all_events, errors = await _collect_events(
        calendar, d_start.isoformat(), d_end.isoformat()
    )
    events = layout.visible_events(
        all_events, d_start, d_end, assignee=assignee or None, event_type=event_type or None
    )

    result: dict[str, Any] = {
        "calendars_queried": calendars_queried,
        "start": d_start.isoformat(),
        "end": d_end.isoformat(),
        "count": len(events),
        "events": [_event_to_dict(e) for e in events],
    }
    if errors:
        result["errors"] = errors
    return result


@mcp.tool()
async def create_event(
    calendar: str,
    title: str,
    start_date: str,
    end_date: str = "",
    start_time: str = "",
    end_time: str = "",
    all_day: bool = False,
    event_type: str = "other",
    description: str = "",
    location: str = "",
    assignee: str = "",
    customer: str = "",
) -> dict:
    """Create a new calendar event.

    Args:
        calendar: Calendar name (e.g. "showroom")
        title: Event title
        start_date: First day (e.g. "2025-12-21")
        end_date: Last day, inclusive (optional, defaults to start_date)
        start_time: Start time "HH:MM" (ignored for all-day events)
        end_time: End time "HH:MM" (ignored for all-day events)
        all_day: Whether the event has no clock time
        event_type: meeting, delivery, inspection, showroom, personal, email or other
        description: Event description (optional)
        location: Event location (optional)
        assignee: Staff member in charge (optional)
        customer: Customer name (optional)
    """
    err = _validate_calendar(calendar)
    if err:
        return err

    backend = _get_backend(calendar)
    if not backend:
        return {"error": f"Backend not available: {calendar}"}

    try:
        event = await backend.create_event(
            title=title,
            start_date=start_date,
            end_date=end_date or start_date,
            start_time=start_time or None,
            end_time=end_time or None,
            is_all_day=all_day,
            type=event_type,
            description=description,
            location=location,
            assigned_to_name=assignee,
            customer_name=customer,
        )
        return {"success": True, "event": _event_to_dict(event)}
    except Exception as e:
        return {"error": f"Failed to create event: {e}"}


@mcp.tool()
async def update_event(
    calendar: str,
    event_id: str,
    title: str = "",
    start_date: str = "",
    end_date: str = "",
    start_time: str = "",
    end_time: str = "",
    event_type: str = "",
    description: str = "",
    location: str = "",
    assignee: str = "",
) -> dict:
    """Update an existing calendar event. Only provided fields are changed.

    Args:
        calendar: Calendar name
        event_id: Event ID (from list_events or get_event)
        title: New title (optional)
        start_date: New first day (optional)
        end_date: New last day (optional)
        start_time: New start time (optional)
        end_time: New end time (optional)
        event_type: New event type (optional)
        description: New description (optional)
        location: New location (optional)
        assignee: New staff member in charge (optional)
    """
    err = _validate_calendar(calendar)
    if err:
        return err

    provided = {
        "title": title,
        "start_date": start_date,
        "end_date": end_date,
        "start_time": start_time,
        "end_time": end_time,
        "type": event_type,
        "description": description,
        "location": location,
        "assigned_to_name": assignee,
    }
    kwargs = {k: v for k, v in provided.items() if v}

    if not kwargs:
        return {"error": "No fields to update"}

    backend = _get_backend(calendar)
    if not backend:
        return {"error": f"Backend not available: {calendar}"}

    try:
        event = await backend.update_event(event_id, **kwargs)
        return {"success": True, "event": _event_to_dict(event)}
    except Exception as e:
        return {"error": f"Failed to update event: {e}"}


@mcp.tool()
async def delete_event(calendar: str, event_id: str) -> dict:
    """Delete a calendar event.

    Args:
        calendar: Calendar name
        event_id: Event ID (from list_events or get_event)
    """
    err = _validate_calendar(calendar)
    if err:
        return err

    backend = _get_backend(calendar)
    if not backend:
        return {"error": f"Backend not available: {calendar}"}

    try:
        success = await backend.delete_event(event_id)
        if success:
            return {"success": True, "message": f"Event deleted from {calendar}"}
        return {"error": f"Event not found: {event_id}"}
    except Exception as e:
        return {"error": f"Failed to delete event: {e}"}


@mcp.tool()
async def get_event(calendar: str, event_id: str) -> dict:
    """Get a single event with full details.

    Args:
        calendar: Calendar name
        event_id: Event ID
    """
    err = _validate_calendar(calendar)
    if err:
        return err

    backend = _get_backend(calendar)
    if not backend:
        return {"error": f"Backend not available: {calendar}"}

    try:
        event = await backend.get_event(event_id)
        return {"event": _event_to_dict(event)}
    except Exception as e:
        return {"error": f"Failed to get event: {e}"}


@mcp.tool()
async def import_email(calendar: str, text: str, sender: str = "") -> dict:
    """Create an event from pasted e-mail text.

    The first line becomes the title. A date (2025-12-21, 2025/12/21 or 12月21日),
    a time (14:00 or 14時00) and a "場所:" line are picked up when present;
    without a time the event is all-day, without a date it lands on today.

    Args:
        calendar: Calendar name
        text: Full e-mail text
        sender: Sender address (optional)
    """
    if not text.strip():
        return {"error": "E-mail text is empty"}

    err = _validate_calendar(calendar)
    if err:
        return err

    backend = _get_backend(calendar)
    if not backend:
        return {"error": f"Backend not available: {calendar}"}

    today = date.today()
    details = extract_email_details(text, today, sender)
    try:
        event = await backend.create_event(**event_fields_from_email(details, today))
        return {"success": True, "event": _event_to_dict(event)}
    except Exception as e:
        return {"error": f"Failed to import e-mail: {e}"}


@mcp.tool()
async def layout_week(
    day: str = "",
    calendar: str = "",
    assignee: str = "",
    event_type: str = "",
) -> dict:
    """Compute the week grid for the Monday-first week containing a day.

    Multi-day and all-day events come back as banner positions (row, start
    column, span); timed single-day events are listed per day with their
    pixel block in the time grid.

    Args:
        day: Any date in the week (default: today)
        calendar: Calendar name. Empty = all calendars.
        assignee: Only events assigned to this staff member (or to all staff).
        event_type: Only events of this type.
    """
    try:
        base = _parse_date(day) if day else date.today()
    except Exception:
        return {"error": f"Invalid date: {day}"}

    if calendar:
        err = _validate_calendar(calendar)
        if err:
            return err

    week = layout.week_dates(base)
    week_start, week_end = week[0].isoformat(), week[-1].isoformat()
    _, all_events, errors = await _collect_events(calendar, week_start, week_end)
    events = layout.visible_events(
        all_events, week_start, week_end, assignee=assignee or None, event_type=event_type or None
    )

    result = _week_to_dict(week, layout.layout_week(week, events, **_layout_options()))

    timed: dict[str, list[dict[str, Any]]] = {}
    for d in week:
        entries = []
        for event in layout.timed_events_for_date(events, d):
            entry = _event_to_dict(event)
            if event.end_time:
                top, height = layout.time_block(
                    event.start_time,
                    event.end_time,
                    first_hour=_settings.first_hour,
                    hour_height=_settings.hour_height,
                    min_height=_settings.min_block_height,
                )
                entry["top"] = top
                entry["height"] = height
            entries.append(entry)
        timed[d.isoformat()] = entries

    result["timed"] = timed
    result["time_slots"] = layout.time_slots(_settings.first_hour, _settings.last_hour)
    if errors:
        result["errors"] = errors
    return result


@mcp.tool()
async def layout_month(
    year: int = 0,
    month: int = 0,
    calendar: str = "",
    assignee: str = "",
    event_type: str = "",
) -> dict:
    """Compute banner layouts for the six week rows of a month view.

    Args:
        year: Year (default: current year)
        month: Month 1-12 (default: current month)
        calendar: Calendar name. Empty = all calendars.
        assignee: Only events assigned to this staff member (or to all staff).
        event_type: Only events of this type.
    """
    today = date.today()
    year = year or today.year
    month = month or today.month
    if not 1 <= month <= 12:
        return {"error": f"Invalid month: {month}"}

    if calendar:
        err = _validate_calendar(calendar)
        if err:
            return err

    weeks = layout.month_weeks(year, month)
    start, end = layout.visible_range(weeks)
    _, all_events, errors = await _collect_events(calendar, start, end)
    events = layout.visible_events(
        all_events, start, end, assignee=assignee or None, event_type=event_type or None
    )

    layouts = layout.layout_month(weeks, events, **_layout_options())
    result: dict[str, Any] = {
        "year": year,
        "month": month,
        "start": start,
        "end": end,
        "weeks": [_week_to_dict(week, wl) for week, wl in zip(weeks, layouts)],
    }
    if errors:
        result["errors"] = errors
    return result


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main():
    """Entry point for console script and python -m."""
    global _accounts, _settings

    _accounts = load_config()
    _settings = load_layout_settings()
    if _accounts:
        logger.info("Loaded %d calendar(s): %s", len(_accounts), list(_accounts.keys()))
    else:
        logger.warning("No calendars loaded (CALENDAR_CONFIG=%s)", os.environ.get("CALENDAR_CONFIG", ""))
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()

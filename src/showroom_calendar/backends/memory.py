"""In-memory event store with an optional YAML snapshot file."""

from __future__ import annotations

import asyncio
import logging
import os
import re
import tempfile
import threading
import uuid
from dataclasses import asdict, fields, replace
from datetime import date, datetime, timezone
from typing import Any

import yaml

from ..models import EVENT_TYPES, RECURRENCE_TYPES, CalendarEvent

logger = logging.getLogger("showroom-calendar")

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
_TRUE_STRINGS = frozenset({"true", "yes", "on", "1"})
_FALSE_STRINGS = frozenset({"false", "no", "off", "0", ""})

# Fields callers may set; id, calendar and timestamps are owned by the store.
EDITABLE_FIELDS = frozenset(
    f.name for f in fields(CalendarEvent)
) - {"id", "calendar", "created_at", "updated_at"}


def normalize_date(value: Any) -> str:
    """Coerce a date-like value to ``YYYY-MM-DD``. Accepts ``2025/12/3`` and similar."""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    from dateutil.parser import parse as parse_dt
    try:
        return parse_dt(str(value)).date().isoformat()
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid date: {value!r}") from e


def normalize_time(value: Any) -> str | None:
    """Coerce a clock time to ``HH:MM``; empty values become None."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        # YAML 1.1 reads an unquoted 10:00 as the sexagesimal integer 600
        hours, minutes = divmod(value, 60)
    else:
        match = _TIME_RE.match(str(value).strip())
        if not match:
            raise ValueError(f"Invalid time: {value!r}")
        hours, minutes = int(match.group(1)), int(match.group(2))
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"Invalid time: {value!r}")
    return f"{hours:02d}:{minutes:02d}"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_bool(value: Any) -> bool:
    """Read a flag that may arrive as a bool or as a string like 'false'."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
        return value.strip().lower() in _TRUE_STRINGS
    if value is None:
        return False
    raise ValueError(f"Invalid boolean: {value!r}")


class MemoryBackend:
    """Event store kept in process memory.

    With ``events_file`` in the account config the store is seeded from that
    YAML file on first access and written back after every change.
    """

    def __init__(self, calendar_name: str, config: dict[str, Any]):
        self._name = calendar_name
        self._config = config
        self._path: str | None = config.get("events_file")
        self._events: list[CalendarEvent] | None = None  # Lazy init
        self._lock = threading.Lock()

    # -- loading / saving --------------------------------------------------

    def _get_events(self) -> list[CalendarEvent]:
        if self._events is not None:
            return self._events

        # Only a complete load is kept; a bad entry leaves the store unloaded
        # so nothing is ever saved over the rest of the file.
        loaded: list[CalendarEvent] = []
        if self._path and os.path.isfile(self._path):
            with open(self._path, "r", encoding="utf-8") as f:
                raw = yaml.safe_load(f) or {}
            for idx, entry in enumerate(raw.get("events") or []):
                try:
                    loaded.append(self._event_from_dict(entry))
                except ValueError as e:
                    raise ValueError(f"{self._path}: event #{idx + 1}: {e}") from e
            logger.info("Loaded %d event(s) for '%s' from %s", len(loaded), self._name, self._path)
        elif self._path:
            logger.info("Events file for '%s' does not exist yet: %s", self._name, self._path)
        self._events = loaded
        return self._events

    def _save(self, events: list[CalendarEvent]) -> None:
        """Write ``events`` to the snapshot file, replacing it in one step."""
        if not self._path:
            return
        payload = {"events": [self._event_to_record(e) for e in events]}
        directory = os.path.dirname(self._path) or "."
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".events-", suffix=".yaml")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(payload, f, allow_unicode=True, sort_keys=False)
            os.replace(tmp_path, self._path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def _commit(self, events: list[CalendarEvent]) -> None:
        """Save first, then swap the in-memory list; a failed save changes nothing."""
        self._save(events)
        self._events = events

    def _event_from_dict(self, entry: dict[str, Any]) -> CalendarEvent:
        unknown = set(entry) - EDITABLE_FIELDS - {"id", "created_at", "updated_at"}
        if unknown:
            logger.warning("Calendar '%s': ignoring unknown event fields %s", self._name, sorted(unknown))
        values = {k: v for k, v in entry.items() if k in EDITABLE_FIELDS}
        event = CalendarEvent(
            id=str(entry.get("id") or uuid.uuid4()),
            title=str(values.pop("title", "")),
            start_date=values.pop("start_date", ""),
            end_date=values.pop("end_date", ""),
            calendar=self._name,
            created_at=str(entry.get("created_at", "")),
            updated_at=str(entry.get("updated_at", "")),
            **values,
        )
        return self._validated(event)

    @staticmethod
    def _event_to_record(event: CalendarEvent) -> dict[str, Any]:
        record = asdict(event)
        record.pop("calendar")
        return record

    @staticmethod
    def _validated(event: CalendarEvent) -> CalendarEvent:
        """Normalise dates and times and enforce event invariants."""
        start_date = normalize_date(event.start_date)
        end_date = normalize_date(event.end_date or event.start_date)
        if start_date > end_date:
            raise ValueError(f"start_date {start_date} is after end_date {end_date}")
        if event.type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type '{event.type}'. Must be one of: {EVENT_TYPES}")
        if event.recurrence not in RECURRENCE_TYPES:
            raise ValueError(f"Unknown recurrence '{event.recurrence}'. Must be one of: {RECURRENCE_TYPES}")
        if not event.title:
            raise ValueError("Event title is required")

        is_all_day = _as_bool(event.is_all_day)
        start_time = None if is_all_day else normalize_time(event.start_time)
        end_time = None if is_all_day else normalize_time(event.end_time)
        return replace(
            event,
            start_date=start_date,
            end_date=end_date,
            is_all_day=is_all_day,
            start_time=start_time,
            end_time=end_time,
        )

    @staticmethod
    def _check_fields(values: dict[str, Any]) -> None:
        unknown = set(values) - EDITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown event fields: {sorted(unknown)}")

    # -- queries -------------------------------------------------------------

    def _list_events_sync(self, start: str, end: str) -> list[CalendarEvent]:
        start, end = normalize_date(start), normalize_date(end)
        with self._lock:
            return [e for e in self._get_events() if e.start_date <= end and e.end_date >= start]

    def events_on_date(self, day: date | str) -> list[CalendarEvent]:
        """Events whose date range contains ``day``."""
        day = normalize_date(day)
        with self._lock:
            return [e for e in self._get_events() if e.start_date <= day <= e.end_date]

    def events_for_assignee(self, name: str) -> list[CalendarEvent]:
        with self._lock:
            return [e for e in self._get_events() if e.assigned_to_name == name]

    def _find(self, event_id: str) -> int:
        for idx, event in enumerate(self._get_events()):
            if event.id == event_id:
                return idx
        raise LookupError(f"Event not found: {event_id}")

    # -- mutations -----------------------------------------------------------

    def _create_event_sync(self, **values: Any) -> CalendarEvent:
        self._check_fields(values)
        if "start_date" not in values:
            raise ValueError("start_date is required")
        now = _now()
        event = CalendarEvent(
            id=str(uuid.uuid4()),
            title=values.pop("title", ""),
            start_date=values.pop("start_date"),
            end_date=values.pop("end_date", ""),
            calendar=self._name,
            created_at=now,
            updated_at=now,
            **values,
        )
        event = self._validated(event)
        with self._lock:
            self._commit(self._get_events() + [event])
        logger.info("Event created: %s in '%s'", event.title, self._name)
        return event

    def _update_event_sync(self, event_id: str, **values: Any) -> CalendarEvent:
        self._check_fields(values)
        with self._lock:
            events = self._get_events()
            idx = self._find(event_id)
            updated = self._validated(replace(events[idx], **values, updated_at=_now()))
            self._commit(events[:idx] + [updated] + events[idx + 1:])
        return updated

    def _delete_event_sync(self, event_id: str) -> bool:
        with self._lock:
            try:
                idx = self._find(event_id)
            except LookupError:
                return False
            events = self._get_events()
            self._commit(events[:idx] + events[idx + 1:])
        return True

    def _get_event_sync(self, event_id: str) -> CalendarEvent:
        with self._lock:
            return self._get_events()[self._find(event_id)]

    def clear(self) -> None:
        with self._lock:
            self._commit([])

    async def list_events(self, start: str, end: str) -> list[CalendarEvent]:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._list_events_sync, start, end)

    async def create_event(self, **values: Any) -> CalendarEvent:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: self._create_event_sync(**values))

    async def update_event(self, event_id: str, **values: Any) -> CalendarEvent:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, lambda: self._update_event_sync(event_id, **values))

    async def delete_event(self, event_id: str) -> bool:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._delete_event_sync, event_id)

    async def get_event(self, event_id: str) -> CalendarEvent:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._get_event_sync, event_id)

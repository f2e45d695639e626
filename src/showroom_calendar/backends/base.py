"""Protocol for calendar event stores."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..models import CalendarEvent


@runtime_checkable
class CalendarBackend(Protocol):
    """Protocol that all event stores must satisfy. Dates are ISO ``YYYY-MM-DD``."""

    async def list_events(self, start: str, end: str) -> list[CalendarEvent]: ...

    async def create_event(self, **fields: object) -> CalendarEvent: ...

    async def update_event(self, event_id: str, **fields: object) -> CalendarEvent: ...

    async def delete_event(self, event_id: str) -> bool: ...

    async def get_event(self, event_id: str) -> CalendarEvent: ...

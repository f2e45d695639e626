"""Turn pasted e-mail text into a calendar event."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from typing import Any

DEFAULT_TITLE = "メールからの予定"
DEFAULT_START_TIME = "10:00"
DEFAULT_END_TIME = "11:00"
MAX_SUBJECT_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 500

_ISO_DATE_RE = re.compile(r"(\d{4})[-/](\d{1,2})[-/](\d{1,2})")
_JP_DATE_RE = re.compile(r"(\d{1,2})月(\d{1,2})日")
_TIME_RE = re.compile(r"(\d{1,2})[時:](\d{2})")
_LOCATION_RE = re.compile(r"場所[:：]?\s*(.+?)[\r\n]")


@dataclass
class EmailImport:
    """Details pulled out of an e-mail before it becomes an event."""

    subject: str
    sender: str
    body: str
    extracted_date: str | None = None
    extracted_time: str | None = None
    extracted_location: str | None = None


def extract_email_details(text: str, today: date, sender: str = "") -> EmailImport:
    """Scan e-mail text for a date, a start time and a location.

    ``M月D日`` dates have no year and are taken to be in ``today``'s year.
    """
    extracted_date = None
    match = _ISO_DATE_RE.search(text)
    if match:
        year, month, day = match.groups()
        extracted_date = f"{year}-{int(month):02d}-{int(day):02d}"
    else:
        match = _JP_DATE_RE.search(text)
        if match:
            month, day = match.groups()
            extracted_date = f"{today.year}-{int(month):02d}-{int(day):02d}"

    match = _TIME_RE.search(text)
    extracted_time = f"{int(match.group(1)):02d}:{match.group(2)}" if match else None

    # Needs a trailing newline, so a location on the very last line is missed.
    match = _LOCATION_RE.search(text)
    extracted_location = match.group(1).strip() if match else None

    lines = text.strip().splitlines()
    subject = lines[0].strip()[:MAX_SUBJECT_LENGTH] if lines else ""

    return EmailImport(
        subject=subject,
        sender=sender,
        body=text,
        extracted_date=extracted_date,
        extracted_time=extracted_time,
        extracted_location=extracted_location,
    )


def add_hours(time: str, hours: int) -> str:
    """Shift an ``HH:MM`` clock time, wrapping past midnight."""
    h, m = (int(part) for part in time.split(":"))
    return f"{(h + hours) % 24:02d}:{m:02d}"


def event_fields_from_email(email: EmailImport, today: date) -> dict[str, Any]:
    """Create-event fields for an imported e-mail.

    Without an extracted time the event becomes an all-day entry on the
    extracted date (or today).
    """
    event_date = email.extracted_date or today.isoformat()
    fields: dict[str, Any] = {
        "title": email.subject or DEFAULT_TITLE,
        "description": email.body[:MAX_DESCRIPTION_LENGTH],
        "start_date": event_date,
        "end_date": event_date,
        "is_all_day": not email.extracted_time,
        "type": "email",
        "location": email.extracted_location or "",
        "email_subject": email.subject,
        "email_from": email.sender,
    }
    if email.extracted_time:
        fields["start_time"] = email.extracted_time
        fields["end_time"] = add_hours(email.extracted_time, 1)
    else:
        fields["start_time"] = DEFAULT_START_TIME
        fields["end_time"] = DEFAULT_END_TIME
    return fields

"""YAML configuration loading for calendar accounts and grid layout."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any

import yaml

logger = logging.getLogger("showroom-calendar")

CONFIG_PATH = os.environ.get("CALENDAR_CONFIG", "/config/calendar_accounts.yaml")

VALID_TYPES = {"memory", "file"}


@dataclass
class CalendarAccount:
    """A single calendar account configuration."""

    name: str
    label: str
    type: str  # memory, file
    config: dict[str, Any] = field(default_factory=dict)


@dataclass
class LayoutSettings:
    """Grid dimensions used by the layout tools."""

    max_row: int = 10  # highest banner row tried before overflowing
    overflow_end_col: int = 6  # end column when a banner runs past the week
    visible_rows: int = 6
    first_hour: int = 7
    last_hour: int = 21
    hour_height: int = 60
    min_block_height: int = 30


def _read_config() -> dict[str, Any] | None:
    path = CONFIG_PATH
    if not os.path.isfile(path):
        logger.warning("Config file not found: %s", path)
        return None

    with open(path, "r") as f:
        raw = yaml.safe_load(f)
    return raw or {}


def load_config() -> dict[str, CalendarAccount]:
    """Load and validate the ``calendars`` section.

    Returns dict of name -> CalendarAccount.
    """
    raw = _read_config()
    if raw is None:
        return {}

    if "calendars" not in raw:
        logger.warning("No 'calendars' key in config file")
        return {}

    accounts: dict[str, CalendarAccount] = {}
    seen_names: set[str] = set()

    for entry in raw["calendars"] or []:
        name = str(entry.get("name", "")).strip()
        if not name:
            raise ValueError("Calendar missing 'name' field")
        if name in seen_names:
            raise ValueError(f"Duplicate calendar name: '{name}'")
        seen_names.add(name)

        cal_type = str(entry.get("type", "memory")).strip().lower()
        if cal_type not in VALID_TYPES:
            raise ValueError(f"Calendar '{name}': unknown type '{cal_type}'. Must be one of: {VALID_TYPES}")

        label = entry.get("label", name)

        # Collect type-specific config (everything except metadata fields)
        config = {k: v for k, v in entry.items() if k not in ("name", "label", "type")}

        if cal_type == "file" and not config.get("events_file"):
            raise ValueError(f"Calendar '{name}' (file): 'events_file' is required")

        accounts[name] = CalendarAccount(name=name, label=label, type=cal_type, config=config)

    return accounts


def load_layout_settings() -> LayoutSettings:
    """Load the optional ``layout`` section, falling back to defaults."""
    raw = _read_config()
    section = (raw or {}).get("layout") or {}

    known = {f.name for f in fields(LayoutSettings)}
    unknown = set(section) - known
    if unknown:
        raise ValueError(f"Unknown layout settings: {sorted(unknown)}")

    try:
        settings = LayoutSettings(**{k: int(v) for k, v in section.items()})
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid layout settings: {e}") from e

    if settings.max_row < 0:
        raise ValueError("layout.max_row must be >= 0")
    if not 0 <= settings.overflow_end_col <= 6:
        raise ValueError("layout.overflow_end_col must be between 0 and 6")
    if settings.visible_rows < 1:
        raise ValueError("layout.visible_rows must be >= 1")
    if not 0 <= settings.first_hour <= settings.last_hour <= 23:
        raise ValueError("layout.first_hour/last_hour must satisfy 0 <= first <= last <= 23")

    return settings

"""Date helpers for day tables. Dates travel as YYYY-MM-DD strings."""

from __future__ import annotations

import re
import time
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from loguru import logger

DEFAULT_DATE_FORMAT = "DD. MM. YYYY"

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_EMBEDDED_DATE_RE = re.compile(r"(\d{4}-\d{2}-\d{2})")


def is_valid_date(value: str | None) -> bool:
    """True for a real calendar date written as YYYY-MM-DD."""
    if not value or not _ISO_DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def normalize_date(value: str | None) -> str | None:
    """Coerce a date or datetime string to YYYY-MM-DD, or None if unparseable."""
    if not value:
        return None
    if _ISO_DATE_RE.match(value):
        return value if is_valid_date(value) else None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed.date().isoformat()


def format_date(value: str, date_format: str | None = None) -> str:
    normalized = normalize_date(value)
    if not normalized:
        logger.warning(f"[DATES] Invalid date string: {value!r}")
        return "Invalid Date"

    year, month, day = normalized.split("-")
    fmt = date_format or DEFAULT_DATE_FORMAT
    if fmt == "MM/DD/YYYY":
        return f"{month}/{day}/{year}"
    if fmt == "YYYY-MM-DD":
        return f"{year}-{month}-{day}"
    return f"{day}. {month}. {year}"


def format_date_with_weekday(value: str, date_format: str | None = None) -> str:
    """Title used for day tables, e.g. ``Wednesday, 28. 01. 2026``."""
    normalized = normalize_date(value)
    if not normalized:
        return format_date(value, date_format)
    weekday = date.fromisoformat(normalized).strftime("%A")
    return f"{weekday}, {format_date(normalized, date_format)}"


def add_days(value: str, days: int) -> str:
    return (date.fromisoformat(value) + timedelta(days=days)).isoformat()


def extract_date(text: str | None) -> str | None:
    """First YYYY-MM-DD substring of ``text`` (e.g. ``tbl_x9-2026-01-25``)."""
    if not text:
        return None
    match = _EMBEDDED_DATE_RE.search(text)
    return match.group(1) if match else None


def resolve_timezone(name: str | None) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning(f"[DATES] Unknown timezone {name!r}, falling back to UTC")
        return ZoneInfo("UTC")


def today_in(tz_name: str | None, now: datetime | None = None) -> str:
    tz = resolve_timezone(tz_name)
    current = now.astimezone(tz) if now else datetime.now(tz)
    return current.date().isoformat()


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)

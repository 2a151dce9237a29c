"""Calendar helpers. Dates are ISO strings (YYYY-MM-DD) compared lexically."""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Australia/Sydney"

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def today_local(tz: str = DEFAULT_TIMEZONE, now: datetime | None = None) -> str:
    """Current date in the given IANA zone."""
    zone = ZoneInfo(tz)
    moment = now.astimezone(zone) if now else datetime.now(zone)
    return moment.date().isoformat()


def is_iso_date(text: str) -> bool:
    if not _ISO_DATE.match(text):
        return False
    try:
        date.fromisoformat(text)
    except ValueError:
        return False
    return True


def previous_date(day: str) -> str:
    return (date.fromisoformat(day) - timedelta(days=1)).isoformat()


def is_overdue(due_date: str, today: str) -> bool:
    return due_date < today


def is_due_today(due_date: str, today: str) -> bool:
    return due_date == today


def days_overdue(due_date: str, today: str) -> int:
    return (date.fromisoformat(today) - date.fromisoformat(due_date)).days

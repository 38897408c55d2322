from __future__ import annotations

import re
from datetime import date, datetime, timedelta

WEEK_KEY_RE = re.compile(r"^(\d{4})-W(\d{2})$")


def to_ymd(value) -> str:
    """'YYYY-MM-DD' for a date/datetime; strings pass through unchanged."""
    if not value:
        return ""
    if isinstance(value, str):
        return value
    return value.strftime("%Y-%m-%d")


def parse_ymd(value) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def start_of_month(day: date) -> date:
    return day.replace(day=1)


def default_date_range(
    date_from=None, date_to=None, today: date | None = None
) -> tuple[str, str]:
    """Requested range, defaulting to the first of the current month through today."""
    today = today or date.today()
    start = to_ymd(date_from) or to_ymd(start_of_month(today))
    end = to_ymd(date_to) or to_ymd(today)
    return start, end


def iso_week_key(value) -> str | None:
    """
    ISO-8601 week identifier 'YYYY-Www' of a date.
    Returns None when the value cannot be read as a date.
    """
    day = parse_ymd(value)
    if day is None:
        return None
    iso_year, iso_week, _ = day.isocalendar()
    return f"{iso_year}-W{iso_week:02d}"


def is_week_key(value) -> bool:
    if not isinstance(value, str):
        return False
    match = WEEK_KEY_RE.match(value)
    if not match:
        return False
    year, week = int(match.group(1)), int(match.group(2))
    # Dec 28th always falls in the last ISO week of its year
    return 1 <= week <= date(year, 12, 28).isocalendar()[1]


def week_bounds(week_key: str) -> tuple[date, date]:
    """Monday..Sunday of an ISO week key."""
    if not is_week_key(week_key):
        raise ValueError(f"Invalid week key: {week_key!r}")
    year, week = int(week_key[:4]), int(week_key[6:])
    monday = date.fromisocalendar(year, week, 1)
    return monday, monday + timedelta(days=6)

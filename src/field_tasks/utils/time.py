"""Timestamp helpers.

Every stored timestamp is a UTC ISO-8601 string with microsecond
precision, so plain string comparison orders them chronologically and
SQLite range scans over the text columns behave.
"""

import time
from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_iso(moment: datetime) -> str:
    """Render *moment* in the canonical stored form."""
    if moment.tzinfo is None:
        # Naive datetimes are taken as local wall-clock time
        moment = moment.astimezone()
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string (``Z`` suffix accepted) to an aware datetime."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.astimezone(timezone.utc)


def now_iso() -> str:
    return format_iso(utc_now())


def to_iso(value) -> str | None:
    """Normalize a datetime, ISO string or None to the stored form.

    Raises ValueError for anything that is not a recognizable timestamp.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return format_iso(value)
    if isinstance(value, str):
        return format_iso(parse_iso(value))
    raise ValueError(f"Not a timestamp: {value!r}")


def next_timestamp(previous: str | None = None) -> str:
    """Current time, nudged forward so it is strictly after *previous*.

    Keeps ``updated_at`` advancing on every mutation even when two writes
    land in the same microsecond or the wall clock steps backwards.
    """
    now = utc_now()
    if previous:
        floor = parse_iso(previous) + timedelta(microseconds=1)
        if now < floor:
            now = floor
    return format_iso(now)


def add_minutes(moment: datetime, minutes: int) -> datetime:
    return moment + timedelta(minutes=minutes)


def tomorrow_at(hour: int, minute: int = 0,
                now: datetime | None = None) -> datetime:
    """Local wall-clock time tomorrow at ``hour:minute``."""
    base = (now or datetime.now()).astimezone()
    target = base + timedelta(days=1)
    return target.replace(hour=hour, minute=minute, second=0, microsecond=0)


class SortOrderSequence:
    """Hands out strictly increasing, clock-derived sort keys.

    Values are epoch milliseconds, bumped by one whenever the clock has
    not moved since the previous call, so records created in a burst
    still sort in creation order.
    """

    def __init__(self):
        self._last = 0

    def next(self) -> int:
        value = int(time.time() * 1000)
        if value <= self._last:
            value = self._last + 1
        self._last = value
        return value

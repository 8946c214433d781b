"""Common time utilities."""

from __future__ import annotations

import datetime as dt


def utcnow() -> dt.datetime:
    """Return an aware UTC timestamp suitable for DB defaults."""
    return dt.datetime.now(dt.UTC)


def today_utc() -> dt.date:
    """Return the current calendar date in UTC."""
    return utcnow().date()


def start_of_day(day: dt.date) -> dt.datetime:
    """Return the aware UTC midnight that opens ``day``."""
    return dt.datetime.combine(day, dt.time.min, tzinfo=dt.UTC)

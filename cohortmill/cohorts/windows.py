"""Sliding window generation for cohort classification."""

from __future__ import annotations

import dataclasses
import datetime as dt

from cohortmill.common.time import start_of_day

from .errors import InvalidRangeError


@dataclasses.dataclass(frozen=True, slots=True)
class Window:
    """Half-open calendar window ``[start, end)``.

    Attributes
    ----------
    index
        Zero-based position in the generated sequence.
    start
        First day covered by the window (inclusive).
    end
        First day after the window (exclusive).

    """

    index: int
    start: dt.date
    end: dt.date

    @property
    def start_at(self) -> dt.datetime:
        """Aware UTC instant that opens the window."""
        return start_of_day(self.start)

    @property
    def end_at(self) -> dt.datetime:
        """Aware UTC instant that closes the window (exclusive)."""
        return start_of_day(self.end)

    @property
    def days(self) -> int:
        """Number of days covered; the boundary window may be shorter."""
        return (self.end - self.start).days

    def contains(self, moment: dt.datetime) -> bool:
        """Return True when ``moment`` falls inside the window."""
        return self.start_at <= moment < self.end_at


def validate_range(
    start_date: dt.date, end_date: dt.date, window_size_days: int
) -> None:
    """Raise ``InvalidRangeError`` for unusable window parameters."""
    if window_size_days <= 0:
        raise InvalidRangeError.non_positive_window(window_size_days)
    if end_date <= start_date:
        raise InvalidRangeError.end_not_after_start(start_date, end_date)


def generate_windows(
    start_date: dt.date, end_date: dt.date, window_size_days: int
) -> tuple[Window, ...]:
    """Return the gapless, chronologically ordered windows covering a range.

    Windows step forward from ``start_date`` by ``window_size_days``; the
    last window is clamped to ``end_date`` and may be shorter than the rest.

    Raises
    ------
    InvalidRangeError
        If ``end_date <= start_date`` or ``window_size_days <= 0``.

    """
    validate_range(start_date, end_date, window_size_days)
    step = dt.timedelta(days=window_size_days)
    windows: list[Window] = []
    cursor = start_date
    while cursor < end_date:
        upper = min(cursor + step, end_date)
        windows.append(Window(index=len(windows), start=cursor, end=upper))
        cursor = upper
    return tuple(windows)


def lookback_window(first: Window, window_size_days: int) -> Window:
    """Return the full-size window immediately preceding ``first``."""
    return Window(
        index=first.index - 1,
        start=first.start - dt.timedelta(days=window_size_days),
        end=first.start,
    )


__all__ = ["Window", "generate_windows", "lookback_window", "validate_range"]

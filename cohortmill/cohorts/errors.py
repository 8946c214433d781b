"""Errors raised by the cohort engine."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import datetime as dt


class InvalidRangeError(ValueError):
    """Raised when a date range or window size cannot produce windows."""

    @classmethod
    def end_not_after_start(
        cls, start_date: dt.date, end_date: dt.date
    ) -> InvalidRangeError:
        """Return an error for an empty or inverted date range."""
        return cls(
            "end_date must be after start_date, got "
            f"start={start_date.isoformat()}, end={end_date.isoformat()}"
        )

    @classmethod
    def non_positive_window(cls, window_size_days: int) -> InvalidRangeError:
        """Return an error for a zero or negative window size."""
        return cls(f"window_size_days must be positive, got: {window_size_days}")


class InvalidScopeError(ValueError):
    """Raised when a scope specification cannot be parsed."""

    def __init__(self, spec: str) -> None:
        """Record the offending specification."""
        super().__init__(
            f"invalid scope {spec!r}; expected 'combined', 'org:<name>' "
            "or '<owner>/<name>'"
        )

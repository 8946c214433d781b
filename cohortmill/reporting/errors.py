"""Errors specific to cohort reporting."""

from __future__ import annotations


class CohortReportingError(Exception):
    """Base class for reporting errors."""


class CachedReportDecodeError(CohortReportingError):
    """Raised when a cached payload no longer decodes as a report."""

    def __init__(self, cache_key: str, detail: str) -> None:
        """Record the cache key whose payload failed to decode."""
        self.cache_key = cache_key
        super().__init__(f"cached report {cache_key!r} is unreadable: {detail}")


class PrecomputeError(CohortReportingError):
    """Raised when every scheduled combination of a precompute run failed.

    Parameters
    ----------
    exceptions
        Failures collected across scopes and window sizes.

    Attributes
    ----------
    exceptions
        Immutable tuple of the underlying failures.

    """

    exceptions: tuple[Exception, ...]

    def __init__(self, exceptions: list[Exception]) -> None:
        """Initialize with the failures collected during the run."""
        self.exceptions = tuple(exceptions)
        count = len(self.exceptions)
        super().__init__(f"Cohort precompute failed: {count} error(s) occurred")


class ReportCacheError(CohortReportingError):
    """Raised when the report store cannot be read or written."""

    def __init__(self, cache_key: str, detail: str) -> None:
        """Record the cache key the failed operation addressed."""
        self.cache_key = cache_key
        super().__init__(f"report cache unavailable for {cache_key!r}: {detail}")

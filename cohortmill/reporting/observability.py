"""Structured log events for cohort report computation.

Usage
-----
>>> event_logger = CohortEventLogger()
>>> event_logger.log_report_started(
...     scope="combined",
...     start_date=start,
...     end_date=end,
...     window_size=7,
... )

"""

from __future__ import annotations

import enum
import typing as typ

from cohortmill.logging import get_logger, log_error, log_info, log_warning

if typ.TYPE_CHECKING:
    import datetime as dt

    from cohortmill.cohorts.states import UserStates
    from cohortmill.cohorts.windows import Window

logger = get_logger(__name__)


class CohortEventType(enum.StrEnum):
    """Structured log event types for cohort runs."""

    WINDOW_CLASSIFIED = "cohorts.window.classified"
    REPORT_STARTED = "cohorts.report.started"
    REPORT_COMPLETED = "cohorts.report.completed"
    REPORT_CACHED = "cohorts.report.cached"
    REPORT_FAILED = "cohorts.report.failed"
    CACHE_DISCARDED = "cohorts.cache.discarded"


class CohortEventLogger:
    """Emit cohort lifecycle events via femtologging."""

    def log_report_started(
        self,
        *,
        scope: str,
        start_date: dt.date,
        end_date: dt.date,
        window_size: int,
    ) -> None:
        """Log the start of a report computation."""
        log_info(
            logger,
            "[%s] scope=%s start=%s end=%s window_size=%d",
            CohortEventType.REPORT_STARTED,
            scope,
            start_date.isoformat(),
            end_date.isoformat(),
            window_size,
        )

    def log_window_classified(
        self, *, scope: str, window: Window, states: UserStates
    ) -> None:
        """Log per-window progress."""
        log_info(
            logger,
            "[%s] scope=%s window=%d start=%s end=%s active_users=%d",
            CohortEventType.WINDOW_CLASSIFIED,
            scope,
            window.index,
            window.start.isoformat(),
            window.end.isoformat(),
            len(states),
        )

    def log_report_completed(
        self, *, scope: str, windows: int, users: int, cached: bool
    ) -> None:
        """Log a finished computation and whether it was stored."""
        log_info(
            logger,
            "[%s] scope=%s windows=%d users=%d stored=%s",
            CohortEventType.REPORT_COMPLETED,
            scope,
            windows,
            users,
            cached,
        )

    def log_report_cached(self, *, cache_key: str) -> None:
        """Log a cache hit that skipped recomputation."""
        log_info(logger, "[%s] cache_key=%s", CohortEventType.REPORT_CACHED, cache_key)

    def log_report_failed(
        self, *, scope: str, window_size: int, error: BaseException
    ) -> None:
        """Log a failed computation with error details.

        Parameters
        ----------
        scope
            Scope token the run was computing.
        window_size
            Window length of the failed combination.
        error
            Raised exception.

        """
        log_error(
            logger,
            "[%s] scope=%s window_size=%d error_type=%s error_message=%s",
            CohortEventType.REPORT_FAILED,
            scope,
            window_size,
            type(error).__name__,
            str(error),
            exc_info=error,
        )

    def log_cache_discarded(self, *, cache_key: str, error: BaseException) -> None:
        """Log an unreadable cache entry that will be recomputed."""
        log_warning(
            logger,
            "[%s] cache_key=%s error_message=%s",
            CohortEventType.CACHE_DISCARDED,
            cache_key,
            str(error),
        )

"""Cohort report service: states summaries and transition reports.

The service reads qualifying activity for a scope from the ledger once,
builds the cohort timeline and renders the two public reports. Reports for
finalized ranges are cached under their full parameter tuple; a cache hit
skips the ledger entirely. An entry that no longer decodes is logged and
recomputed.

Usage
-----
>>> import datetime as dt
>>> from cohortmill.ledger import SqlActivityLedger
>>> from cohortmill.reporting import CohortReportService, SqlReportCache
>>> service = CohortReportService(
...     SqlActivityLedger(session_factory),
...     cache=SqlReportCache(session_factory),
... )
>>> report = await service.states_summary(
...     dt.date(2024, 1, 1), dt.date(2024, 4, 1), 7
... )

"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

import msgspec

from cohortmill.cohorts.scopes import CohortScope
from cohortmill.cohorts.states import ActivityHistory
from cohortmill.cohorts.timeline import build_timeline
from cohortmill.cohorts.windows import validate_range
from cohortmill.common.time import start_of_day, today_utc
from cohortmill.reporting.cache import CacheKey, is_cacheable
from cohortmill.reporting.errors import CachedReportDecodeError
from cohortmill.reporting.models import (
    ReportKind,
    StatesSummaryEntry,
    TransitionsEntry,
    decode_report,
    encode_report,
)
from cohortmill.reporting.observability import CohortEventLogger

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from cohortmill.cohorts.states import UserStates
    from cohortmill.cohorts.timeline import CohortTimeline
    from cohortmill.cohorts.windows import Window
    from cohortmill.ledger.query import ActivityLedger
    from cohortmill.reporting.cache import ReportCache
    from cohortmill.reporting.models import StatesReport, TransitionsReport


@dc.dataclass(frozen=True, slots=True)
class CohortReports:
    """Both public reports computed from one timeline."""

    states: StatesReport
    transitions: TransitionsReport
    stored: bool = False


def states_report(timeline: CohortTimeline) -> StatesReport:
    """Render one ``StatesSummaryEntry`` per window, in order."""
    return [
        StatesSummaryEntry(date=window.start, states=timeline.state_counts(i))
        for i, window in enumerate(timeline.windows)
    ]


def transitions_report(timeline: CohortTimeline) -> TransitionsReport:
    """Render one ``TransitionsEntry`` per adjacent window pair."""
    return [
        TransitionsEntry(date=pair.earlier.end, transitions=dict(pair.counts))
        for pair in timeline.pairs
    ]


class CohortReportService:
    """Compute and cache cohort reports for a scope and date range."""

    def __init__(
        self,
        ledger: ActivityLedger,
        *,
        cache: ReportCache | None = None,
        event_logger: CohortEventLogger | None = None,
        today: cabc.Callable[[], dt.date] = today_utc,
    ) -> None:
        """Configure the service.

        Parameters
        ----------
        ledger
            Read port over qualifying activity.
        cache
            Optional report cache; without one every call recomputes.
        event_logger
            Structured logger for progress events; a default is created.
        today
            Clock used to decide whether a range is finalized.

        """
        self._ledger = ledger
        self._cache = cache
        self._event_logger = event_logger or CohortEventLogger()
        self._today = today

    async def states_summary(
        self,
        start_date: dt.date,
        end_date: dt.date,
        window_size: int,
        scope: CohortScope | None = None,
    ) -> StatesReport:
        """Return state counts for every window between the dates.

        Raises
        ------
        InvalidRangeError
            If the range is empty or ``window_size`` is not positive.
        LedgerUnavailableError
            If the ledger query fails; nothing is cached.

        """
        scope = scope or CohortScope.combined()
        validate_range(start_date, end_date, window_size)
        key = CacheKey(ReportKind.STATES, scope, start_date, end_date, window_size)
        cached = await self._cached(key)
        if cached is not None:
            return cached
        reports = await self.compute_reports(start_date, end_date, window_size, scope)
        return reports.states

    async def transitions(
        self,
        start_date: dt.date,
        end_date: dt.date,
        window_size: int,
        scope: CohortScope | None = None,
    ) -> TransitionsReport:
        """Return transition counts for every adjacent window pair.

        Raises
        ------
        InvalidRangeError
            If the range is empty or ``window_size`` is not positive.
        LedgerUnavailableError
            If the ledger query fails; nothing is cached.

        """
        scope = scope or CohortScope.combined()
        validate_range(start_date, end_date, window_size)
        key = CacheKey(ReportKind.TRANSITIONS, scope, start_date, end_date, window_size)
        cached = await self._cached(key)
        if cached is not None:
            return cached
        reports = await self.compute_reports(start_date, end_date, window_size, scope)
        return reports.transitions

    async def compute_reports(
        self,
        start_date: dt.date,
        end_date: dt.date,
        window_size: int,
        scope: CohortScope | None = None,
    ) -> CohortReports:
        """Recompute both reports and cache them when the range is final."""
        scope = scope or CohortScope.combined()
        timeline = await self.timeline(start_date, end_date, window_size, scope)
        reports = CohortReports(
            states=states_report(timeline),
            transitions=transitions_report(timeline),
        )

        stored = False
        if self._cache is not None and is_cacheable(end_date, self._today()):
            # Encode both before writing so a failure leaves no entry behind.
            payloads = {
                ReportKind.STATES: encode_report(reports.states),
                ReportKind.TRANSITIONS: encode_report(reports.transitions),
            }
            for kind, payload in payloads.items():
                key = CacheKey(kind, scope, start_date, end_date, window_size)
                await self._cache.put(key, payload)
            stored = True

        users = set().union(*timeline.states) if timeline.states else set()
        self._event_logger.log_report_completed(
            scope=scope.cache_token,
            windows=len(timeline.windows),
            users=len(users),
            cached=stored,
        )
        return dc.replace(reports, stored=stored)

    async def timeline(
        self,
        start_date: dt.date,
        end_date: dt.date,
        window_size: int,
        scope: CohortScope | None = None,
    ) -> CohortTimeline:
        """Load the scope's history and classify every window (uncached)."""
        scope = scope or CohortScope.combined()
        validate_range(start_date, end_date, window_size)
        self._event_logger.log_report_started(
            scope=scope.cache_token,
            start_date=start_date,
            end_date=end_date,
            window_size=window_size,
        )
        history = await self._load_history(scope, end_date)

        def _progress(window: Window, states: UserStates) -> None:
            self._event_logger.log_window_classified(
                scope=scope.cache_token, window=window, states=states
            )

        return build_timeline(
            history,
            start_date=start_date,
            end_date=end_date,
            window_size=window_size,
            on_window=_progress,
        )

    async def _load_history(
        self, scope: CohortScope, end_date: dt.date
    ) -> ActivityHistory:
        before = start_of_day(end_date)
        flags = await self._ledger.actor_flags()
        pairs = await self._ledger.qualifying_activity(scope, before, flags=flags)
        if scope.is_combined:
            # Scoped history already spans the ecosystem.
            return ActivityHistory.from_pairs(pairs)
        users = {user for user, _ in pairs}
        first_seen = await self._ledger.first_activity(users, before, flags=flags)
        return ActivityHistory.from_pairs(pairs, first_seen)

    async def _cached(self, key: CacheKey) -> typ.Any | None:  # noqa: ANN401
        if self._cache is None or not is_cacheable(key.end_date, self._today()):
            return None
        payload = await self._cache.get(key)
        if payload is None:
            return None
        try:
            report = decode_report(key.kind, payload)
        except msgspec.DecodeError as exc:
            # Treated as a miss; the recomputed report replaces the entry.
            self._event_logger.log_cache_discarded(
                cache_key=str(key),
                error=CachedReportDecodeError(str(key), str(exc)),
            )
            return None
        self._event_logger.log_report_cached(cache_key=str(key))
        return report


__all__ = [
    "CohortReportService",
    "CohortReports",
    "states_report",
    "transitions_report",
]

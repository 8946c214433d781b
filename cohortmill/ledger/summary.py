"""Period-over-period activity counts for the dashboard headline.

Compares the most recent ``period_days`` with the period before it: stars,
forks, comments and releases, plus how many distinct external contributors
were active and how many of them were active for the first time.
"""

from __future__ import annotations

import dataclasses as dc
import datetime as dt
import typing as typ

from sqlalchemy import ColumnElement, and_, distinct, func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from cohortmill.cohorts.eligibility import ActorFlags
from cohortmill.cohorts.scopes import CohortScope
from cohortmill.common.time import utcnow
from cohortmill.ledger.errors import LedgerUnavailableError
from cohortmill.ledger.query import qualifying_clause, scope_clause
from cohortmill.ledger.storage import ActivityEvent

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@dc.dataclass(frozen=True, slots=True)
class MetricDelta:
    """One headline metric for the current and previous period."""

    current: int
    previous: int

    @property
    def change(self) -> int:
        """Absolute change from the previous period."""
        return self.current - self.previous


@dc.dataclass(frozen=True, slots=True)
class ActivitySummary:
    """Headline counts for the current and previous period.

    Attributes
    ----------
    period_days
        Length of each compared period.
    period_end
        Exclusive end of the current period.
    stars, forks, comments
        Non-core ``WatchEvent``, ``ForkEvent`` and ``IssueCommentEvent``
        counts.
    releases
        ``ReleaseEvent`` counts, including core team releases.
    contributors
        Distinct actors with qualifying activity.
    first_time_contributors
        Contributors whose first qualifying activity falls in the period.

    """

    period_days: int
    period_end: dt.datetime
    stars: MetricDelta
    forks: MetricDelta
    comments: MetricDelta
    releases: MetricDelta
    contributors: MetricDelta
    first_time_contributors: MetricDelta

    def as_rows(self) -> list[tuple[str, MetricDelta]]:
        """Return ``(label, delta)`` rows in display order."""
        return [
            ("stars", self.stars),
            ("forks", self.forks),
            ("comments", self.comments),
            ("releases", self.releases),
            ("contributors", self.contributors),
            ("first_time_contributors", self.first_time_contributors),
        ]


def _not_core() -> ColumnElement[bool]:
    return or_(ActivityEvent.core.is_(None), ActivityEvent.core.is_(False))


class ActivitySummaryService:
    """Compute headline activity counts from the ledger."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Bind the service to an async session factory."""
        self._session_factory = session_factory

    async def summary(
        self,
        period_days: int = 7,
        *,
        scope: CohortScope | None = None,
        flags: ActorFlags | None = None,
        as_of: dt.datetime | None = None,
    ) -> ActivitySummary:
        """Return this-period versus last-period counts.

        Raises
        ------
        ValueError
            If ``period_days`` is not positive.
        LedgerUnavailableError
            If the ledger cannot be queried.

        """
        if period_days < 1:
            msg = f"period_days must be positive, got: {period_days}"
            raise ValueError(msg)
        scope = scope or CohortScope.combined()
        flags = flags or ActorFlags()
        end = as_of or utcnow()
        span = dt.timedelta(days=period_days)
        current = (end - span, end)
        previous = (end - 2 * span, end - span)

        try:
            async with self._session_factory() as session:
                counts: dict[str, MetricDelta] = {}
                for label, event_type, external_only in (
                    ("stars", "WatchEvent", True),
                    ("forks", "ForkEvent", True),
                    ("comments", "IssueCommentEvent", True),
                    ("releases", "ReleaseEvent", False),
                ):
                    counts[label] = MetricDelta(
                        current=await self._count_events(
                            session, scope, event_type, current, external_only
                        ),
                        previous=await self._count_events(
                            session, scope, event_type, previous, external_only
                        ),
                    )
                contributors = MetricDelta(
                    current=await self._count_contributors(
                        session, scope, flags, current
                    ),
                    previous=await self._count_contributors(
                        session, scope, flags, previous
                    ),
                )
                first_timers = MetricDelta(
                    current=await self._count_first_timers(
                        session, scope, flags, current
                    ),
                    previous=await self._count_first_timers(
                        session, scope, flags, previous
                    ),
                )
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerUnavailableError.query_failed(scope, exc) from exc

        return ActivitySummary(
            period_days=period_days,
            period_end=end,
            contributors=contributors,
            first_time_contributors=first_timers,
            **counts,
        )

    @staticmethod
    def _in_period(period: tuple[dt.datetime, dt.datetime]) -> ColumnElement[bool]:
        start, end = period
        return and_(ActivityEvent.occurred_at >= start, ActivityEvent.occurred_at < end)

    async def _count_events(
        self,
        session: AsyncSession,
        scope: CohortScope,
        event_type: str,
        period: tuple[dt.datetime, dt.datetime],
        external_only: bool,  # noqa: FBT001
    ) -> int:
        stmt = select(func.count(ActivityEvent.id)).where(
            scope_clause(scope),
            ActivityEvent.event_type == event_type,
            self._in_period(period),
        )
        if external_only:
            stmt = stmt.where(_not_core())
        return int(await session.scalar(stmt) or 0)

    async def _count_contributors(
        self,
        session: AsyncSession,
        scope: CohortScope,
        flags: ActorFlags,
        period: tuple[dt.datetime, dt.datetime],
    ) -> int:
        stmt = select(func.count(distinct(ActivityEvent.actor))).where(
            scope_clause(scope),
            qualifying_clause(flags),
            self._in_period(period),
        )
        return int(await session.scalar(stmt) or 0)

    async def _count_first_timers(
        self,
        session: AsyncSession,
        scope: CohortScope,
        flags: ActorFlags,
        period: tuple[dt.datetime, dt.datetime],
    ) -> int:
        start, _end = period
        earlier = (
            select(ActivityEvent.actor)
            .where(
                scope_clause(scope),
                qualifying_clause(flags),
                ActivityEvent.occurred_at < start,
            )
            .distinct()
        )
        stmt = select(func.count(distinct(ActivityEvent.actor))).where(
            scope_clause(scope),
            qualifying_clause(flags),
            self._in_period(period),
            ActivityEvent.actor.notin_(earlier.scalar_subquery()),
        )
        return int(await session.scalar(stmt) or 0)


__all__ = ["ActivitySummary", "ActivitySummaryService", "MetricDelta"]

"""Scoped read queries over the activity ledger.

``SqlActivityLedger`` is the read port the cohort engine depends on. It
answers three questions:

- which actors are bots or core team members right now (a snapshot taken
  once per run);
- every qualifying ``(user, occurred_at)`` pair for a scope before a cut-off;
- the ecosystem-wide first qualifying timestamp of a set of users.

Storage failures surface as ``LedgerUnavailableError`` so a batch run can
abandon one scope and move on.
"""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import ColumnElement, and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from cohortmill.cohorts.eligibility import PASSIVE_EVENT_TYPES, ActorFlags
from cohortmill.cohorts.scopes import CohortScope, ScopeKind
from cohortmill.ledger.errors import LedgerUnavailableError
from cohortmill.ledger.storage import ActivityEvent, Contributor, TrackedOrganization

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

type ActivityPair = tuple[str, dt.datetime]

# Upper bound on bound parameters per IN clause.
_USER_CHUNK_SIZE = 500


class ActivityLedger(typ.Protocol):
    """Read port used by the cohort report service."""

    async def actor_flags(self) -> ActorFlags:
        """Return a snapshot of bot and core actors."""
        ...

    async def qualifying_activity(
        self,
        scope: CohortScope,
        before: dt.datetime,
        *,
        flags: ActorFlags,
    ) -> list[ActivityPair]:
        """Return qualifying activity for ``scope`` strictly before ``before``."""
        ...

    async def first_activity(
        self,
        users: cabc.Collection[str],
        before: dt.datetime,
        *,
        flags: ActorFlags,
    ) -> dict[str, dt.datetime]:
        """Return ecosystem-wide first qualifying timestamps for ``users``."""
        ...


def _not_true(column: typ.Any) -> ColumnElement[bool]:  # noqa: ANN401
    return or_(column.is_(None), column.is_(False))


def qualifying_clause(flags: ActorFlags) -> ColumnElement[bool]:
    """Express the eligibility rules as a SQL predicate."""
    clauses: list[ColumnElement[bool]] = [
        ActivityEvent.event_type.notin_(sorted(PASSIVE_EVENT_TYPES)),
        _not_true(ActivityEvent.bot),
        _not_true(ActivityEvent.core),
    ]
    excluded = sorted(flags.bots | flags.core)
    if excluded:
        clauses.append(func.lower(ActivityEvent.actor).notin_(excluded))
    return and_(*clauses)


def _ecosystem_clause() -> ColumnElement[bool]:
    """Events of internal tracked organizations, or all events if none."""
    internal = select(func.lower(TrackedOrganization.name)).where(
        TrackedOrganization.internal.is_(True)
    )
    return or_(
        ~internal.exists(),
        func.lower(ActivityEvent.org).in_(internal.scalar_subquery()),
    )


def scope_clause(scope: CohortScope) -> ColumnElement[bool]:
    """Translate a cohort scope into a row filter."""
    match scope.kind:
        case ScopeKind.REPOSITORY:
            return func.lower(ActivityEvent.repository_full_name) == scope.key
        case ScopeKind.ORGANIZATION:
            return func.lower(ActivityEvent.org) == scope.key
        case _:
            return _ecosystem_clause()


def _chunks(values: list[str], size: int) -> cabc.Iterator[list[str]]:
    for offset in range(0, len(values), size):
        yield values[offset : offset + size]


class SqlActivityLedger:
    """Activity ledger backed by the ``activity_events`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Bind the ledger to an async session factory."""
        self._session_factory = session_factory

    async def actor_flags(self) -> ActorFlags:
        """Snapshot the contributor directory into an immutable lookup."""
        stmt = select(
            Contributor.github_username, Contributor.bot, Contributor.core
        ).where(or_(Contributor.bot.is_(True), Contributor.core.is_(True)))
        try:
            async with self._session_factory() as session:
                rows = (await session.execute(stmt)).tuples().all()
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerUnavailableError.query_failed(None, exc) from exc
        return ActorFlags.from_logins(
            bots=[name for name, bot, _core in rows if bot],
            core=[name for name, _bot, core in rows if core],
        )

    async def qualifying_activity(
        self,
        scope: CohortScope,
        before: dt.datetime,
        *,
        flags: ActorFlags,
    ) -> list[ActivityPair]:
        """Return every qualifying event for ``scope`` before ``before``.

        Pairs are ordered by timestamp then user so downstream grouping is
        deterministic.
        """
        stmt = (
            select(ActivityEvent.actor, ActivityEvent.occurred_at)
            .where(
                scope_clause(scope),
                qualifying_clause(flags),
                ActivityEvent.occurred_at < before,
            )
            .order_by(ActivityEvent.occurred_at, ActivityEvent.actor)
        )
        try:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                return [(actor, occurred_at) for actor, occurred_at in result.tuples()]
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerUnavailableError.query_failed(scope, exc) from exc

    async def first_activity(
        self,
        users: cabc.Collection[str],
        before: dt.datetime,
        *,
        flags: ActorFlags,
    ) -> dict[str, dt.datetime]:
        """Return the ecosystem-wide first qualifying timestamp per user."""
        combined = CohortScope.combined()
        first_seen: dict[str, dt.datetime] = {}
        try:
            async with self._session_factory() as session:
                for chunk in _chunks(sorted(users), _USER_CHUNK_SIZE):
                    stmt = (
                        select(ActivityEvent.actor, func.min(ActivityEvent.occurred_at))
                        .where(
                            ActivityEvent.actor.in_(chunk),
                            scope_clause(combined),
                            qualifying_clause(flags),
                            ActivityEvent.occurred_at < before,
                        )
                        .group_by(ActivityEvent.actor)
                    )
                    for actor, earliest in (await session.execute(stmt)).tuples():
                        first_seen[actor] = _as_utc(earliest)
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerUnavailableError.query_failed(combined, exc) from exc
        return first_seen

    async def tracked_scopes(self) -> list[CohortScope]:
        """Return the combined scope followed by each internal organization."""
        stmt = (
            select(TrackedOrganization.name)
            .where(TrackedOrganization.internal.is_(True))
            .order_by(TrackedOrganization.name)
        )
        try:
            async with self._session_factory() as session:
                names = (await session.scalars(stmt)).all()
        except (SQLAlchemyError, OSError) as exc:
            raise LedgerUnavailableError.query_failed(None, exc) from exc
        return [CohortScope.combined(), *(CohortScope.organization(n) for n in names)]


def _as_utc(value: dt.datetime | str) -> dt.datetime:
    """Normalise aggregate results that bypass the column type decorator."""
    if isinstance(value, str):
        value = dt.datetime.fromisoformat(value)
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.UTC)
    return value.astimezone(dt.UTC)


__all__ = [
    "ActivityLedger",
    "ActivityPair",
    "SqlActivityLedger",
    "qualifying_clause",
    "scope_clause",
]

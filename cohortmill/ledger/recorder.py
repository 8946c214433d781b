"""Record GitHub activity into the ledger and maintain actor flags.

``EventRecorder`` upserts Events API objects keyed by their GitHub id. Each
stored row carries ``bot``/``core`` flags copied from the contributor
directory and a precomputed ``pmf`` flag saying whether the event counts
toward engagement. Flag maintenance helpers re-apply contributor flags to
history after a contributor is reclassified.
"""

from __future__ import annotations

import dataclasses as dc
import typing as typ

from sqlalchemy import and_, func, or_, select, update

from cohortmill.cohorts.eligibility import PASSIVE_EVENT_TYPES, is_qualifying
from cohortmill.ledger.errors import MalformedEventError
from cohortmill.ledger.models import decode_event, parse_created_at
from cohortmill.ledger.storage import ActivityEvent, Contributor
from cohortmill.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from cohortmill.ledger.models import GitHubEventRecord

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class RecordSummary:
    """Outcome of a bulk ``record_events`` call."""

    recorded: int
    skipped: int
    skipped_ids: tuple[str | None, ...] = ()


def _not_true(column: typ.Any) -> typ.Any:  # noqa: ANN401
    return or_(column.is_(None), column.is_(False))


class EventRecorder:
    """Upsert GitHub events and keep ledger flags consistent."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Store the session factory used for ledger writes."""
        self._session_factory = session_factory

    async def record_event(
        self,
        event_json: object,
        *,
        repository_full_name: str | None = None,
    ) -> ActivityEvent:
        """Insert or update one Events API object.

        Parameters
        ----------
        event_json
            Decoded JSON value from the GitHub Events API; anything other
            than an object with the required fields is rejected.
        repository_full_name
            Canonical ``owner/name`` to store instead of ``repo.name``, for
            events of renamed repositories.

        Raises
        ------
        MalformedEventError
            If the object lacks required fields or has an unusable
            timestamp.

        """
        record = decode_event(event_json)
        occurred_at = parse_created_at(record)

        async with self._session_factory() as session, session.begin():
            event = await session.scalar(
                select(ActivityEvent).where(ActivityEvent.github_id == record.github_id)
            )
            if event is None:
                event = ActivityEvent(github_id=record.github_id)
                session.add(event)
            self._apply_record(event, record, repository_full_name)
            event.occurred_at = occurred_at
            await self._apply_contributor_flags(session, event)
            event.pmf = is_qualifying(
                event.event_type,
                actor_is_bot=event.bot,
                actor_is_core=event.core,
            )
        return event

    async def record_events(self, events: cabc.Iterable[object]) -> RecordSummary:
        """Record many events, skipping and logging malformed ones."""
        recorded = 0
        skipped: list[str | None] = []
        for event_json in events:
            try:
                await self.record_event(event_json)
            except MalformedEventError as exc:
                skipped.append(exc.event_id)
                log_warning(
                    logger,
                    "Skipping malformed event id=%s: %s",
                    exc.event_id,
                    exc,
                )
                continue
            recorded += 1
        log_info(
            logger,
            "Recorded %d events (%d malformed skipped)",
            recorded,
            len(skipped),
        )
        return RecordSummary(
            recorded=recorded, skipped=len(skipped), skipped_ids=tuple(skipped)
        )

    @staticmethod
    def _apply_record(
        event: ActivityEvent,
        record: GitHubEventRecord,
        repository_full_name: str | None,
    ) -> None:
        event.actor = record.actor.login
        event.event_type = record.type
        event.action = record.action
        event.payload = dict(record.payload)
        if event.repository_full_name is None:
            full_name = repository_full_name or record.repo.name
            event.repository_full_name = full_name
            event.org = full_name.split("/", 1)[0]

    @staticmethod
    async def _apply_contributor_flags(
        session: AsyncSession, event: ActivityEvent
    ) -> None:
        if event.core is not None and event.bot is not None:
            return
        contributor = await session.scalar(
            select(Contributor).where(
                func.lower(Contributor.github_username) == event.actor.lower()
            )
        )
        if contributor is None:
            return
        if event.core is None:
            event.core = contributor.core
        if event.bot is None:
            event.bot = contributor.bot

    async def register_contributor(
        self,
        github_username: str,
        *,
        core: bool = False,
        bot: bool = False,
    ) -> Contributor:
        """Create or update a contributor's classification."""
        async with self._session_factory() as session, session.begin():
            contributor = await session.scalar(
                select(Contributor).where(
                    func.lower(Contributor.github_username) == github_username.lower()
                )
            )
            if contributor is None:
                contributor = Contributor(github_username=github_username)
                session.add(contributor)
            contributor.core = core
            contributor.bot = bot
        return contributor

    async def refresh_actor_flags(self) -> int:
        """Re-apply contributor core/bot flags to every stored event.

        Events of flagged actors also lose their ``pmf`` flag. Returns the
        number of flagged contributors processed.
        """
        async with self._session_factory() as session, session.begin():
            rows = (
                await session.execute(
                    select(
                        Contributor.github_username, Contributor.core, Contributor.bot
                    ).where(or_(Contributor.core.is_(True), Contributor.bot.is_(True)))
                )
            ).all()
            for username, core, bot in rows:
                values: dict[str, bool] = {"pmf": False}
                if core:
                    values["core"] = True
                if bot:
                    values["bot"] = True
                await session.execute(
                    update(ActivityEvent)
                    .where(func.lower(ActivityEvent.actor) == username.lower())
                    .values(**values)
                )
        log_info(logger, "Refreshed actor flags for %d contributors", len(rows))
        return len(rows)

    async def backfill_pmf_flags(self) -> int:
        """Set ``pmf`` on events whose flag has never been computed.

        Returns the number of events marked as qualifying.
        """
        qualifying = and_(
            ActivityEvent.pmf.is_(None),
            _not_true(ActivityEvent.bot),
            _not_true(ActivityEvent.core),
            ActivityEvent.event_type.notin_(sorted(PASSIVE_EVENT_TYPES)),
        )
        async with self._session_factory() as session, session.begin():
            marked = await session.execute(
                update(ActivityEvent).where(qualifying).values(pmf=True)
            )
            await session.execute(
                update(ActivityEvent)
                .where(ActivityEvent.pmf.is_(None))
                .values(pmf=False)
            )
        count = marked.rowcount or 0
        log_info(logger, "Backfilled pmf flag on %d events", count)
        return count


__all__ = ["EventRecorder", "RecordSummary"]

"""Persistence models for the activity ledger."""

from __future__ import annotations

import datetime as dt
import typing as typ

from sqlalchemy import JSON, Boolean, DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from cohortmill.common.time import utcnow
from cohortmill.ledger.errors import TimezoneAwareRequiredError

if typ.TYPE_CHECKING:
    from sqlalchemy.engine import Dialect
    from sqlalchemy.ext.asyncio import AsyncEngine


class Base(DeclarativeBase):
    """Declarative base shared by ledger and report tables."""


class UTCDateTime(TypeDecorator[dt.datetime]):
    """DateTime wrapper that round-trips UTC tzinfo even on SQLite."""

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Reject naive datetimes and bind aware ones as UTC."""
        if value is None:
            return None
        if value.tzinfo is None:
            raise TimezoneAwareRequiredError.for_occurrence()
        return value.astimezone(dt.UTC)

    def process_result_value(
        self, value: dt.datetime | None, dialect: Dialect
    ) -> dt.datetime | None:
        """Return stored datetimes as aware UTC values."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.UTC)
        return value.astimezone(dt.UTC)


class ActivityEvent(Base):
    """One GitHub activity event attributed to an actor and repository."""

    __tablename__ = "activity_events"
    __table_args__ = (
        UniqueConstraint("github_id", name="uq_activity_events_github_id"),
        Index("ix_activity_events_org_time", "org", "occurred_at"),
        Index("ix_activity_events_repo_time", "repository_full_name", "occurred_at"),
        Index("ix_activity_events_actor_time", "actor", "occurred_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    github_id: Mapped[str] = mapped_column(String(64))
    actor: Mapped[str] = mapped_column(String(255))
    event_type: Mapped[str] = mapped_column(String(64))
    action: Mapped[str | None] = mapped_column(String(64), default=None)
    repository_full_name: Mapped[str] = mapped_column(String(255))
    org: Mapped[str] = mapped_column(String(255))
    payload: Mapped[dict[str, typ.Any]] = mapped_column(JSON, default=dict)
    occurred_at: Mapped[dt.datetime] = mapped_column(UTCDateTime())
    recorded_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)
    bot: Mapped[bool | None] = mapped_column(Boolean, default=None)
    core: Mapped[bool | None] = mapped_column(Boolean, default=None)
    pmf: Mapped[bool | None] = mapped_column(Boolean, default=None)


class Contributor(Base):
    """Known GitHub account with maintainer and bot classification."""

    __tablename__ = "contributors"
    __table_args__ = (
        UniqueConstraint("github_username", name="uq_contributors_username"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    github_username: Mapped[str] = mapped_column(String(255))
    core: Mapped[bool] = mapped_column(Boolean, default=False)
    bot: Mapped[bool] = mapped_column(Boolean, default=False)
    updated_at: Mapped[dt.datetime] = mapped_column(
        UTCDateTime(), default=utcnow, onupdate=utcnow
    )


class TrackedOrganization(Base):
    """Organization whose repositories make up the tracked ecosystem."""

    __tablename__ = "tracked_organizations"
    __table_args__ = (UniqueConstraint("name", name="uq_tracked_organizations_name"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    internal: Mapped[bool] = mapped_column(Boolean, default=True)


async def init_ledger_storage(engine: AsyncEngine) -> None:
    """Create all tables registered with Base if they are absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

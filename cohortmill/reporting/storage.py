"""Persisted cohort reports used as the report cache."""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import typing as typ

from sqlalchemy import Date, Index, Integer, LargeBinary, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from cohortmill.common.time import utcnow
from cohortmill.ledger.storage import Base, UTCDateTime

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncEngine


class CohortReportRecord(Base):
    """Encoded report addressed by its full parameter tuple."""

    __tablename__ = "cohort_reports"
    __table_args__ = (
        UniqueConstraint("cache_key", name="uq_cohort_reports_cache_key"),
        Index("ix_cohort_reports_scope", "scope", "window_size"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    cache_key: Mapped[str] = mapped_column(String(512))
    kind: Mapped[str] = mapped_column(String(32))
    scope: Mapped[str] = mapped_column(String(255))
    start_date: Mapped[dt.date] = mapped_column(Date())
    end_date: Mapped[dt.date] = mapped_column(Date())
    window_size: Mapped[int] = mapped_column(Integer)
    payload: Mapped[bytes] = mapped_column(LargeBinary)
    generated_at: Mapped[dt.datetime] = mapped_column(UTCDateTime(), default=utcnow)


async def init_report_storage(engine: AsyncEngine) -> None:
    """Create the report table (and any other registered tables) if absent."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

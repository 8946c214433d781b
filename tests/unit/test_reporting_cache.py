"""Unit tests for cache keys and the SQL report cache."""

from __future__ import annotations

import datetime as dt
import typing as typ

import pytest
from sqlalchemy import func, select

from cohortmill.cohorts import CohortScope
from cohortmill.reporting import (
    CacheKey,
    CohortReportRecord,
    InMemoryReportCache,
    ReportCache,
    ReportKind,
    SqlReportCache,
    is_cacheable,
)

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

START = dt.date(2024, 1, 1)
END = dt.date(2024, 4, 1)


def _key(kind: ReportKind = ReportKind.STATES, size: int = 7) -> CacheKey:
    return CacheKey(kind, CohortScope.parse("org:Octo"), START, END, size)


def test_cache_key_renders_full_parameter_tuple() -> None:
    """Keys spell out kind, scope, dates and window size."""
    assert str(_key()) == "states:org:octo:2024-01-01:2024-04-01:7"


@pytest.mark.parametrize(
    ("end", "today", "expected"),
    [
        (END, END, True),
        (END, END + dt.timedelta(days=1), True),
        (END, END - dt.timedelta(days=1), False),
    ],
)
def test_is_cacheable(
    end: dt.date,
    today: dt.date,
    expected: bool,  # noqa: FBT001
) -> None:
    """Only ranges whose last window has closed are cacheable."""
    assert is_cacheable(end, today) is expected


def test_adapters_satisfy_protocol(
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    """Both adapters implement the ReportCache port."""
    assert isinstance(InMemoryReportCache(), ReportCache)
    assert isinstance(SqlReportCache(session_factory), ReportCache)


class TestSqlReportCache:
    """Tests for SqlReportCache."""

    @pytest.mark.asyncio
    async def test_put_then_get(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Stored payloads are returned byte-for-byte."""
        cache = SqlReportCache(session_factory)

        await cache.put(_key(), b'[{"date":"2024-01-01"}]')

        assert await cache.get(_key()) == b'[{"date":"2024-01-01"}]'
        assert await cache.get(_key(size=14)) is None

    @pytest.mark.asyncio
    async def test_put_replaces_existing_entry(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        """Last writer wins with a single row per key."""
        cache = SqlReportCache(session_factory)

        await cache.put(_key(), b"[]")
        await cache.put(_key(), b"[1]")

        async with session_factory() as session:
            rows = await session.scalar(select(func.count(CohortReportRecord.id)))
            record = await session.scalar(select(CohortReportRecord))
        assert rows == 1
        assert record is not None
        assert record.payload == b"[1]"
        assert (record.kind, record.scope, record.window_size) == (
            "states",
            "org:octo",
            7,
        )

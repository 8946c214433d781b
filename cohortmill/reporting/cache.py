"""Report cache addressed by the full report parameter tuple.

Only finalized ranges (``end_date`` no later than today) are cached; a range
that includes the still-open window is always recomputed. Writes replace the
whole entry inside one transaction so a failed run never leaves a partial
payload and concurrent writers resolve as last-writer-wins.
"""

from __future__ import annotations

import dataclasses as dc
import threading
import typing as typ

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from cohortmill.reporting.errors import ReportCacheError
from cohortmill.reporting.storage import CohortReportRecord

if typ.TYPE_CHECKING:
    import datetime as dt

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from cohortmill.cohorts.scopes import CohortScope
    from cohortmill.reporting.models import ReportKind


@dc.dataclass(frozen=True, slots=True)
class CacheKey:
    """Parameters that uniquely address a cached report."""

    kind: ReportKind
    scope: CohortScope
    start_date: dt.date
    end_date: dt.date
    window_size: int

    def __str__(self) -> str:
        """Render the key as ``kind:scope:start:end:size``."""
        return ":".join(
            (
                self.kind.value,
                self.scope.cache_token,
                self.start_date.isoformat(),
                self.end_date.isoformat(),
                str(self.window_size),
            )
        )


def is_cacheable(end_date: dt.date, today: dt.date) -> bool:
    """Return True when every window of the range has closed."""
    return end_date <= today


@typ.runtime_checkable
class ReportCache(typ.Protocol):
    """Port for storing encoded reports."""

    async def get(self, key: CacheKey) -> bytes | None:
        """Return the cached payload for ``key`` if present."""
        ...

    async def put(self, key: CacheKey, payload: bytes) -> None:
        """Store ``payload`` under ``key``, replacing any previous entry."""
        ...


class InMemoryReportCache:
    """Process-local cache, mainly for the CLI and tests."""

    def __init__(self) -> None:
        """Create an empty cache."""
        self._entries: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        """Return the number of cached reports."""
        with self._lock:
            return len(self._entries)

    async def get(self, key: CacheKey) -> bytes | None:
        """Return the cached payload for ``key`` if present."""
        with self._lock:
            return self._entries.get(str(key))

    async def put(self, key: CacheKey, payload: bytes) -> None:
        """Store ``payload`` under ``key``."""
        with self._lock:
            self._entries[str(key)] = payload


class SqlReportCache:
    """Report cache stored in the ``cohort_reports`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        """Bind the cache to an async session factory."""
        self._session_factory = session_factory

    async def get(self, key: CacheKey) -> bytes | None:
        """Return the cached payload for ``key`` if present."""
        stmt = select(CohortReportRecord.payload).where(
            CohortReportRecord.cache_key == str(key)
        )
        try:
            async with self._session_factory() as session:
                return await session.scalar(stmt)
        except (SQLAlchemyError, OSError) as exc:
            raise ReportCacheError(str(key), str(exc)) from exc

    async def put(self, key: CacheKey, payload: bytes) -> None:
        """Replace the entry for ``key`` in a single transaction."""
        record = CohortReportRecord(
            cache_key=str(key),
            kind=key.kind.value,
            scope=key.scope.cache_token,
            start_date=key.start_date,
            end_date=key.end_date,
            window_size=key.window_size,
            payload=payload,
        )
        try:
            async with self._session_factory() as session, session.begin():
                await session.execute(
                    delete(CohortReportRecord).where(
                        CohortReportRecord.cache_key == str(key)
                    )
                )
                session.add(record)
        except (SQLAlchemyError, OSError) as exc:
            raise ReportCacheError(str(key), str(exc)) from exc


__all__ = [
    "CacheKey",
    "InMemoryReportCache",
    "ReportCache",
    "SqlReportCache",
    "is_cacheable",
]

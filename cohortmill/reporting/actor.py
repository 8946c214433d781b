"""Dramatiq actor for the periodic cohort precompute run.

The scheduler that triggers this actor lives outside cohortmill; it only
needs to send the message:

>>> precompute_reports_job.send(
...     database_url="postgresql+asyncpg://...",
...     as_of="2024-07-01",
... )

"""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import dramatiq
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from cohortmill.ledger.errors import LedgerUnavailableError
from cohortmill.ledger.query import SqlActivityLedger
from cohortmill.reporting._broker import ensure_broker_configured
from cohortmill.reporting.cache import SqlReportCache
from cohortmill.reporting.config import CohortConfig
from cohortmill.reporting.errors import PrecomputeError
from cohortmill.reporting.precompute import run_precompute
from cohortmill.reporting.service import CohortReportService
from cohortmill.reporting.warmup import HttpCacheWarmer

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sqlalchemy.ext.asyncio import AsyncSession

    from cohortmill.reporting.precompute import PrecomputeSummary


def _parse_as_of(as_of: str | None) -> dt.date | None:
    """Parse an ISO calendar date, or return None."""
    if as_of is None:
        return None
    try:
        return dt.date.fromisoformat(as_of)
    except ValueError as exc:
        msg = f"as_of must be an ISO date (YYYY-MM-DD), got: {as_of!r}"
        raise ValueError(msg) from exc


async def precompute_with_session_factory(
    session_factory: async_sessionmaker[AsyncSession],
    config: CohortConfig,
    *,
    as_of: dt.date | None = None,
    on_progress: cabc.Callable[[str], None] | None = None,
) -> PrecomputeSummary:
    """Run a precompute pass against an existing session factory.

    Without configured scopes the combined scope and every internal tracked
    organization are precomputed.

    Raises
    ------
    PrecomputeError
        If the tracked scopes cannot be listed or every scheduled
        combination failed.

    """
    ledger = SqlActivityLedger(session_factory)
    service = CohortReportService(ledger, cache=SqlReportCache(session_factory))
    scopes = config.parsed_scopes()
    if not scopes:
        try:
            scopes = tuple(await ledger.tracked_scopes())
        except LedgerUnavailableError as exc:
            raise PrecomputeError([exc]) from exc
    warmer = (
        HttpCacheWarmer(config.cache_warm_urls, timeout_s=config.warm_timeout_s)
        if config.cache_warm_urls
        else None
    )
    try:
        summary = await run_precompute(
            service,
            config,
            as_of=as_of,
            scopes=scopes,
            warmer=warmer,
            on_progress=on_progress,
        )
    finally:
        if warmer is not None:
            await warmer.aclose()

    if summary.failures and summary.computed == 0:
        raise PrecomputeError([RuntimeError(f.error) for f in summary.failures])
    return summary


async def _precompute_async(
    database_url: str, config: CohortConfig, as_of: dt.date | None
) -> PrecomputeSummary:
    engine = create_async_engine(database_url)
    try:
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        return await precompute_with_session_factory(
            session_factory, config, as_of=as_of
        )
    finally:
        await engine.dispose()


@dramatiq.actor
def precompute_reports_job(
    database_url: str,
    *,
    as_of: str | None = None,
) -> list[str]:
    """Precompute and cache cohort reports for every configured combination.

    Parameters
    ----------
    database_url
        SQLAlchemy async URL of the ledger database.
    as_of
        Optional ISO date ending the precomputed range; defaults to today.

    Returns
    -------
    list[str]
        Human readable summary lines.

    Raises
    ------
    ValueError
        If ``as_of`` is not an ISO date or configuration is invalid.
    PrecomputeError
        If every combination failed, so the message is retried.

    """
    ensure_broker_configured()
    config = CohortConfig.from_env()
    summary = asyncio.run(_precompute_async(database_url, config, _parse_as_of(as_of)))
    return summary.lines()

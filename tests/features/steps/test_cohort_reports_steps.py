"""Behavioural coverage for cohort state and transition reports."""

from __future__ import annotations

import asyncio
import datetime as dt
import typing as typ

import pytest
from pytest_bdd import given, parsers, scenario, then, when
from sqlalchemy import delete, func, select

from cohortmill.ledger import (
    ActivityEvent,
    EventRecorder,
    LedgerUnavailableError,
    SqlActivityLedger,
)
from cohortmill.reporting import (
    CohortReportRecord,
    CohortReportService,
    SqlReportCache,
    encode_report,
)
from tests.helpers.ledger import StaticLedger, github_event

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from cohortmill.ledger.query import ActivityLedger
    from cohortmill.reporting.models import StatesReport, TransitionsReport

TODAY = dt.date(2024, 6, 1)
_DATES = r"(?P<start>\d{4}-\d{2}-\d{2}) to (?P<end>\d{4}-\d{2}-\d{2})"
_DATE_CONVERTERS = {"start": dt.date.fromisoformat, "end": dt.date.fromisoformat}


class CohortContext(typ.TypedDict, total=False):
    """Shared mutable scenario state."""

    session_factory: async_sessionmaker[AsyncSession]
    ledger: ActivityLedger
    states: StatesReport
    transitions: TransitionsReport
    first_payload: bytes
    error: Exception


@scenario(
    "../cohort_reports.feature",
    "Returning contributors are retained, absent ones churn",
)
def test_cohort_states_and_transitions() -> None:
    """Wrap the pytest-bdd scenario."""


@scenario("../cohort_reports.feature", "Finalized reports are served from the cache")
def test_cohort_reports_are_cached() -> None:
    """Cached reports should not need the ledger."""


@scenario("../cohort_reports.feature", "A ledger outage stores nothing")
def test_cohort_ledger_outage() -> None:
    """Ledger failures should leave no partial cache entry."""


@pytest.fixture
def cohort_context(
    session_factory: async_sessionmaker[AsyncSession],
) -> CohortContext:
    """Provision a fresh database for the scenario."""
    return {"session_factory": session_factory}


def _service(context: CohortContext) -> CohortReportService:
    return CohortReportService(
        context["ledger"],
        cache=SqlReportCache(context["session_factory"]),
        today=lambda: TODAY,
    )


@given("a ledger with recorded GitHub activity")
def given_recorded_activity(cohort_context: CohortContext) -> None:
    """Record activity for three contributors and a bot."""
    events = [
        github_event(1, "alice", "2024-01-02T09:00:00Z"),
        github_event(2, "alice", "2024-01-10T09:00:00Z", event_type="PushEvent"),
        github_event(3, "bob", "2024-01-02T10:00:00Z", repo="octo/kelp"),
        github_event(4, "bob", "2024-01-09T10:00:00Z"),
        github_event(5, "carol", "2024-01-03T10:00:00Z"),
        github_event(6, "carol", "2024-01-16T10:00:00Z"),
        github_event(7, "release-bot", "2024-01-04T10:00:00Z"),
        github_event(8, "release-bot", "2024-01-17T10:00:00Z"),
        github_event(9, "dave", "2024-01-05T10:00:00Z", event_type="WatchEvent"),
    ]
    session_factory = cohort_context["session_factory"]
    asyncio.run(EventRecorder(session_factory).record_events(events))
    cohort_context["ledger"] = SqlActivityLedger(session_factory)


@given(parsers.parse('the contributor "{login}" is flagged as a bot'))
def given_bot(cohort_context: CohortContext, login: str) -> None:
    """Register a bot and re-apply flags to its stored events."""

    async def _flag() -> None:
        recorder = EventRecorder(cohort_context["session_factory"])
        await recorder.register_contributor(login, bot=True)
        await recorder.refresh_actor_flags()

    asyncio.run(_flag())


@given("a ledger that is unavailable")
def given_unavailable_ledger(cohort_context: CohortContext) -> None:
    """Use a ledger whose every query fails."""
    cohort_context["ledger"] = StaticLedger([], fail_scopes=frozenset({"combined"}))


@when(
    parsers.re(rf"I request weekly reports from {_DATES} expecting a failure"),
    converters=_DATE_CONVERTERS,
)
def request_reports_failing(
    cohort_context: CohortContext, start: dt.date, end: dt.date
) -> None:
    """Request reports and capture the raised error."""
    service = _service(cohort_context)
    with pytest.raises(LedgerUnavailableError) as excinfo:
        asyncio.run(service.states_summary(start, end, 7))
    cohort_context["error"] = excinfo.value


@when(
    parsers.re(rf"I request weekly reports from {_DATES} again"),
    converters=_DATE_CONVERTERS,
)
def request_reports_again(
    cohort_context: CohortContext, start: dt.date, end: dt.date
) -> None:
    """Repeat the request against the same cache."""
    service = _service(cohort_context)
    cohort_context["states"] = asyncio.run(
        service.states_summary(start, end, 7)
    )


@when(
    parsers.re(rf"I request weekly reports from {_DATES}"),
    converters=_DATE_CONVERTERS,
)
def request_reports(
    cohort_context: CohortContext, start: dt.date, end: dt.date
) -> None:
    """Compute both reports for weekly windows."""
    service = _service(cohort_context)

    async def _request() -> tuple[StatesReport, TransitionsReport]:
        states = await service.states_summary(start, end, 7)
        transitions = await service.transitions(start, end, 7)
        return states, transitions

    states, transitions = asyncio.run(_request())
    cohort_context["states"] = states
    cohort_context["transitions"] = transitions
    cohort_context["first_payload"] = encode_report(states)


@when("the ledger becomes unavailable")
def ledger_becomes_unavailable(cohort_context: CohortContext) -> None:
    """Delete the ledger rows and make every query fail."""

    async def _wipe() -> None:
        async with cohort_context["session_factory"]() as session, session.begin():
            await session.execute(delete(ActivityEvent))

    asyncio.run(_wipe())
    cohort_context["ledger"] = StaticLedger([], fail_scopes=frozenset({"combined"}))


@then(parsers.parse("the states summary has {count:d} windows"))
def assert_window_count(cohort_context: CohortContext, count: int) -> None:
    """One states entry per window."""
    states = cohort_context["states"]
    assert len(states) == count, f"expected {count} windows, got {len(states)}"
    assert len(cohort_context["transitions"]) == count - 1


@then(
    parsers.parse(
        "window {index:d} reports {retained:d} retained and {churned:d} "
        "churned contributors"
    )
)
def assert_retained_and_churned(
    cohort_context: CohortContext, index: int, retained: int, churned: int
) -> None:
    """Check retained and churned counts for a one-based window index."""
    states = cohort_context["states"][index - 1].states
    assert (states["retained"], states["churned"]) == (retained, churned), states


@then(parsers.parse("window {index:d} reports {count:d} resurrected contributor"))
def assert_resurrected(cohort_context: CohortContext, index: int, count: int) -> None:
    """Check the resurrected count for a one-based window index."""
    states = cohort_context["states"][index - 1].states
    assert states["resurrected"] == count, states


@then(parsers.parse('the first transition entry counts {count:d} "{label}"'))
def assert_first_transition(
    cohort_context: CohortContext, count: int, label: str
) -> None:
    """The most frequent transition leads the first entry."""
    entry = cohort_context["transitions"][0]
    assert next(iter(entry.transitions.items())) == (label, count), entry


@then("the bot never appears in any report")
def assert_bot_excluded(cohort_context: CohortContext) -> None:
    """The first window counts only the three human contributors."""
    first = cohort_context["states"][0].states
    assert first["new"] == 3, f"expected 3 new contributors, got {first}"


@then("the cached report matches the first report byte for byte")
def assert_cached_report(cohort_context: CohortContext) -> None:
    """The cached copy equals the computed one."""
    assert encode_report(cohort_context["states"]) == cohort_context["first_payload"]


@then("a LedgerUnavailableError is raised")
def assert_ledger_error(cohort_context: CohortContext) -> None:
    """The ledger failure propagates to the caller."""
    assert isinstance(cohort_context.get("error"), LedgerUnavailableError)


@then("no report is cached")
def assert_nothing_cached(cohort_context: CohortContext) -> None:
    """No partial entry was written."""

    async def _count() -> int:
        async with cohort_context["session_factory"]() as session:
            count = await session.scalar(select(func.count(CohortReportRecord.id)))
            return int(count or 0)

    assert asyncio.run(_count()) == 0

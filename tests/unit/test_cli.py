"""Unit tests for the cohortmill command line."""

from __future__ import annotations

import asyncio
import datetime as dt
import json
import typing as typ

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from cohortmill import cli
from cohortmill.cohorts import CohortScope
from cohortmill.reporting import CacheKey, ReportKind, SqlReportCache
from tests.helpers.ledger import github_event

if typ.TYPE_CHECKING:
    from pathlib import Path

_EVENTS = [
    github_event(1, "alice", "2024-01-02T09:00:00Z"),
    github_event(2, "alice", "2024-01-10T09:00:00Z", event_type="PullRequestEvent"),
    github_event(3, "bob", "2024-01-02T11:00:00Z"),
    github_event(4, "bob", "2024-01-09T11:00:00Z"),
    github_event(5, "carol", "2024-01-03T11:00:00Z", event_type="WatchEvent"),
]


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "configure_logging", lambda level: (level, False))


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """Return a ledger database initialised and loaded through the CLI."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    events = tmp_path / "events.jsonl"
    events.write_text("\n".join(json.dumps(e) for e in _EVENTS) + "\n")

    assert cli.main(["--database-url", url, "init-db"]) == 0
    assert cli.main(["--database-url", url, "ingest", str(events)]) == 0
    return url


def _report(database_url: str, command: str, *extra: str) -> list[str]:
    return [
        "--database-url",
        database_url,
        command,
        "--start",
        "2024-01-01",
        "--end",
        "2024-01-15",
        *extra,
    ]


def test_ingest_reports_counts(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """Ingest accepts a JSON array and reports skipped events."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'ingest.db'}"
    events = tmp_path / "events.json"
    events.write_text(json.dumps([_EVENTS[0], {"id": "broken"}]))
    cli.main(["--database-url", url, "init-db"])
    capsys.readouterr()

    assert cli.main(["--database-url", url, "ingest", str(events)]) == 0
    assert capsys.readouterr().out.strip() == "recorded 1 events, skipped 1"


def test_ingest_skips_unreadable_lines(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """A corrupt JSON line is skipped and the lines around it are kept."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'lines.db'}"
    events = tmp_path / "events.jsonl"
    lines = [json.dumps(_EVENTS[0]), '{"id": 9, "type":', json.dumps(_EVENTS[2])]
    events.write_text("\n".join(lines) + "\n")
    cli.main(["--database-url", url, "init-db"])
    capsys.readouterr()

    assert cli.main(["--database-url", url, "ingest", str(events)]) == 0
    assert capsys.readouterr().out.strip() == "recorded 2 events, skipped 1"


def test_ingest_rejects_corrupt_array(tmp_path: Path) -> None:
    """A JSON array that does not parse is an invalid input file."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'array.db'}"
    events = tmp_path / "events.json"
    events.write_text('[{"id": 1},')
    cli.main(["--database-url", url, "init-db"])

    assert cli.main(["--database-url", url, "ingest", str(events)]) == 2


def test_states_prints_one_line_per_window(
    database_url: str, capsys: pytest.CaptureFixture[str]
) -> None:
    """States output lists each window and a totals line."""
    capsys.readouterr()

    assert cli.main(_report(database_url, "states")) == 0

    assert capsys.readouterr().out.splitlines() == [
        "2024-01-01  new=2 retained=0 resurrected=0 churned=0",
        "2024-01-08  new=0 retained=2 resurrected=0 churned=0",
        "2 windows  total new=2 retained=2 resurrected=0 churned=0",
    ]


def test_transitions_json(
    database_url: str, capsys: pytest.CaptureFixture[str]
) -> None:
    """--json prints the report as a JSON document."""
    capsys.readouterr()

    assert cli.main(_report(database_url, "transitions", "--json")) == 0

    assert json.loads(capsys.readouterr().out) == [
        {"date": "2024-01-08", "transitions": {"new_to_retained": 2}}
    ]


def test_repository_scope(
    database_url: str, capsys: pytest.CaptureFixture[str]
) -> None:
    """Scopes are parsed from the command line."""
    capsys.readouterr()

    exit_code = cli.main(_report(database_url, "states", "--scope", "octo/elsewhere"))

    assert exit_code == 0
    assert capsys.readouterr().out.splitlines()[0] == (
        "2024-01-01  new=0 retained=0 resurrected=0 churned=0"
    )


@pytest.mark.parametrize(
    "extra",
    [("--window-size", "0"), ("--scope", "not-a-scope")],
)
def test_invalid_parameters_exit_two(
    database_url: str, capsys: pytest.CaptureFixture[str], extra: tuple[str, str]
) -> None:
    """Invalid ranges and scopes exit with status 2."""
    capsys.readouterr()

    assert cli.main(_report(database_url, "states", *extra)) == 2
    assert "invalid parameters" in capsys.readouterr().err


def test_inverted_range_exits_two(database_url: str) -> None:
    """An end date before the start date is rejected."""
    args = ["--database-url", database_url, "states"]
    args += ["--start", "2024-02-01", "--end", "2024-01-01"]

    assert cli.main(args) == 2


def test_unavailable_database_exits_one(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """A database without tables is reported as a computation failure."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"

    assert cli.main(_report(url, "states")) == 1
    assert "cohort computation failed" in capsys.readouterr().err


def test_precompute(
    database_url: str,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Precompute prints the run summary."""
    monkeypatch.setenv("COHORTMILL_WINDOW_SIZES", "7")
    monkeypatch.setenv("COHORTMILL_HISTORY_DAYS", "14")
    monkeypatch.delenv("COHORTMILL_SCOPES", raising=False)
    monkeypatch.delenv("COHORTMILL_CACHE_WARM_URLS", raising=False)
    capsys.readouterr()

    args = ["--database-url", database_url, "precompute", "--as-of", "2024-01-15"]

    assert cli.main(args) == 0
    assert capsys.readouterr().out.splitlines() == [
        "range 2024-01-01..2024-01-15: 1 computed, 1 cached, 0 failed"
    ]


def test_summary(database_url: str, capsys: pytest.CaptureFixture[str]) -> None:
    """Summary prints the headline metrics."""
    capsys.readouterr()

    assert cli.main(["--database-url", database_url, "summary", "--period", "30"]) == 0

    lines = capsys.readouterr().out.splitlines()
    assert lines[0].startswith("last 30 days to ")
    assert [line.split()[0] for line in lines[1:]] == [
        "stars",
        "forks",
        "comments",
        "releases",
        "contributors",
        "first_time_contributors",
    ]


def _store_unreadable_states(database_url: str) -> None:
    async def _put() -> None:
        engine = create_async_engine(database_url)
        try:
            cache = SqlReportCache(async_sessionmaker(engine, expire_on_commit=False))
            key = CacheKey(
                ReportKind.STATES,
                CohortScope.combined(),
                dt.date(2024, 1, 1),
                dt.date(2024, 1, 15),
                7,
            )
            await cache.put(key, b"{not json")
        finally:
            await engine.dispose()

    asyncio.run(_put())


def test_unreadable_cache_entry_is_recomputed(
    database_url: str, capsys: pytest.CaptureFixture[str]
) -> None:
    """A corrupt cached report does not stop the states command."""
    _store_unreadable_states(database_url)
    capsys.readouterr()

    assert cli.main(_report(database_url, "states")) == 0
    assert capsys.readouterr().out.splitlines()[1] == (
        "2024-01-08  new=0 retained=2 resurrected=0 churned=0"
    )


def test_precompute_reports_progress(
    database_url: str,
    capsys: pytest.CaptureFixture[str],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """Each finished combination is reported on stderr."""
    monkeypatch.setenv("COHORTMILL_WINDOW_SIZES", "7,14")
    monkeypatch.setenv("COHORTMILL_HISTORY_DAYS", "14")
    monkeypatch.delenv("COHORTMILL_SCOPES", raising=False)
    monkeypatch.delenv("COHORTMILL_CACHE_WARM_URLS", raising=False)
    capsys.readouterr()

    args = ["--database-url", database_url, "precompute", "--as-of", "2024-01-15"]

    assert cli.main(args) == 0
    err_lines = capsys.readouterr().err.splitlines()
    assert "combined w=7: 2 windows" in err_lines
    assert "combined w=14: 1 windows" in err_lines


def test_precompute_without_tables_exits_one(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """A precompute run that cannot read the ledger exits with status 1."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}"

    assert cli.main(["--database-url", url, "precompute"]) == 1
    assert "cohort computation failed" in capsys.readouterr().err

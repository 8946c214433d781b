"""Command-line access to cohort reports and the precompute run."""

from __future__ import annotations

import argparse
import asyncio
import datetime as dt
import sys
import typing as typ
from pathlib import Path

import msgspec
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from cohortmill.cohorts.errors import InvalidRangeError, InvalidScopeError
from cohortmill.cohorts.scopes import CohortScope
from cohortmill.ledger.errors import LedgerUnavailableError
from cohortmill.ledger.query import SqlActivityLedger
from cohortmill.ledger.recorder import EventRecorder
from cohortmill.ledger.storage import init_ledger_storage
from cohortmill.ledger.summary import ActivitySummaryService
from cohortmill.logging import configure_logging, get_logger, log_warning
from cohortmill.reporting.actor import precompute_with_session_factory
from cohortmill.reporting.cache import SqlReportCache
from cohortmill.reporting.config import CohortConfig
from cohortmill.reporting.console import (
    render_activity_summary,
    render_states,
    render_transitions,
)
from cohortmill.reporting.errors import CohortReportingError
from cohortmill.reporting.models import as_plain
from cohortmill.reporting.service import CohortReportService
from cohortmill.reporting.storage import init_report_storage

if typ.TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

EXIT_LEDGER_FAILURE = 1
EXIT_INVALID_RANGE = 2


def _iso_date(raw: str) -> dt.date:
    try:
        return dt.date.fromisoformat(raw)
    except ValueError as exc:
        msg = f"expected an ISO date (YYYY-MM-DD), got {raw!r}"
        raise argparse.ArgumentTypeError(msg) from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cohortmill", description=__doc__)
    parser.add_argument(
        "--database-url",
        required=True,
        help="SQLAlchemy async URL of the ledger database",
    )
    parser.add_argument("--log-level", default=None, help="femtologging level")
    commands = parser.add_subparsers(dest="command", required=True)

    for name in ("states", "transitions"):
        report = commands.add_parser(name, help=f"print the {name} report")
        report.add_argument("--start", type=_iso_date, required=True)
        report.add_argument("--end", type=_iso_date, required=True)
        report.add_argument("--window-size", type=int, default=7)
        report.add_argument(
            "--scope",
            default="combined",
            help="'combined', 'org:<name>' or '<owner>/<name>'",
        )
        report.add_argument(
            "--json", action="store_true", help="print the report as JSON"
        )

    precompute = commands.add_parser(
        "precompute", help="compute and cache reports for configured scopes"
    )
    precompute.add_argument("--as-of", type=_iso_date, default=None)

    summary = commands.add_parser(
        "summary", help="print period-over-period activity counts"
    )
    summary.add_argument("--period", type=int, default=7, help="period in days")
    summary.add_argument("--scope", default="combined")

    commands.add_parser("init-db", help="create ledger and report tables")
    ingest = commands.add_parser(
        "ingest", help="record GitHub events from a JSON array or JSON lines file"
    )
    ingest.add_argument("events", type=Path)
    return parser


async def _report_command(
    args: argparse.Namespace,
    session_factory: async_sessionmaker[AsyncSession],
) -> list[str]:
    scope = CohortScope.parse(args.scope)
    service = CohortReportService(
        SqlActivityLedger(session_factory),
        cache=SqlReportCache(session_factory),
    )
    if args.command == "states":
        states = await service.states_summary(
            args.start, args.end, args.window_size, scope
        )
        if args.json:
            return [msgspec.json.encode(as_plain(states)).decode()]
        return render_states(states)
    transitions = await service.transitions(
        args.start, args.end, args.window_size, scope
    )
    if args.json:
        return [msgspec.json.encode(as_plain(transitions)).decode()]
    return render_transitions(transitions)


async def _summary_command(
    args: argparse.Namespace,
    session_factory: async_sessionmaker[AsyncSession],
) -> list[str]:
    ledger = SqlActivityLedger(session_factory)
    flags = await ledger.actor_flags()
    summary = await ActivitySummaryService(session_factory).summary(
        args.period, scope=CohortScope.parse(args.scope), flags=flags
    )
    return render_activity_summary(summary)


def _load_events(path: Path) -> tuple[list[typ.Any], int]:
    """Read a JSON array, or one JSON value per line.

    Returns the decoded values and the number of unreadable lines, which are
    skipped with a warning.
    """
    raw = path.read_bytes()
    if raw.lstrip().startswith(b"["):
        try:
            return msgspec.json.decode(raw), 0
        except msgspec.DecodeError as exc:
            msg = f"{path} is not a valid JSON array: {exc}"
            raise ValueError(msg) from exc

    events: list[typ.Any] = []
    unreadable = 0
    for number, line in enumerate(raw.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            events.append(msgspec.json.decode(line))
        except msgspec.DecodeError as exc:
            unreadable += 1
            log_warning(
                logger, "Skipping unreadable line %d of %s: %s", number, path, exc
            )
    return events, unreadable


async def _ingest_command(
    path: Path,
    session_factory: async_sessionmaker[AsyncSession],
) -> list[str]:
    events, unreadable = _load_events(path)
    summary = await EventRecorder(session_factory).record_events(events)
    skipped = summary.skipped + unreadable
    return [f"recorded {summary.recorded} events, skipped {skipped}"]


def _print_progress(line: str) -> None:
    print(line, file=sys.stderr)


async def _run(args: argparse.Namespace) -> list[str]:
    engine = create_async_engine(args.database_url)
    try:
        session_factory = async_sessionmaker(engine, expire_on_commit=False)
        if args.command == "precompute":
            summary = await precompute_with_session_factory(
                session_factory,
                CohortConfig.from_env(),
                as_of=args.as_of,
                on_progress=_print_progress,
            )
            return summary.lines()
        if args.command == "summary":
            return await _summary_command(args, session_factory)
        if args.command == "init-db":
            await init_ledger_storage(engine)
            await init_report_storage(engine)
            return ["ledger and report tables ready"]
        if args.command == "ingest":
            return await _ingest_command(args.events, session_factory)
        return await _report_command(args, session_factory)
    finally:
        await engine.dispose()


def main(argv: list[str] | None = None) -> int:
    """Run a cohortmill command.

    Parameters
    ----------
    argv : list[str] | None, optional
        Command-line arguments. ``None`` defaults to ``sys.argv``.

    Returns
    -------
    int
        0 on success, 1 when the ledger or report store fails, 2 for invalid
        parameters. Precompute progress is written to stderr.

    """
    args = _build_parser().parse_args(argv)
    configure_logging(args.log_level)
    try:
        lines = asyncio.run(_run(args))
    except (InvalidRangeError, InvalidScopeError, ValueError) as exc:
        print(f"invalid parameters: {exc}", file=sys.stderr)
        return EXIT_INVALID_RANGE
    except (LedgerUnavailableError, CohortReportingError) as exc:
        print(f"cohort computation failed: {exc}", file=sys.stderr)
        return EXIT_LEDGER_FAILURE

    for line in lines:
        print(line)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

"""Line-oriented console rendering for cohort reports."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from cohortmill.ledger.summary import ActivitySummary
    from cohortmill.reporting.models import StatesReport, TransitionsReport


def _pairs(counts: typ.Mapping[str, int]) -> str:
    return " ".join(f"{label}={count}" for label, count in counts.items()) or "-"


def render_states(report: StatesReport) -> list[str]:
    """Return one line per window followed by a totals line."""
    lines = [f"{entry.date.isoformat()}  {_pairs(entry.states)}" for entry in report]
    totals: dict[str, int] = {}
    for entry in report:
        for state, count in entry.states.items():
            totals[state] = totals.get(state, 0) + count
    lines.append(f"{len(report)} windows  total {_pairs(totals)}")
    return lines


def render_transitions(report: TransitionsReport) -> list[str]:
    """Return one line per window pair followed by a summary line."""
    lines = [
        f"{entry.date.isoformat()}  {_pairs(entry.transitions)}" for entry in report
    ]
    users = sum(sum(entry.transitions.values()) for entry in report)
    lines.append(f"{len(report)} window pairs  {users} user transitions")
    return lines


def render_activity_summary(summary: ActivitySummary) -> list[str]:
    """Return headline metrics with the change since the previous period."""
    lines = [
        f"last {summary.period_days} days to {summary.period_end.date().isoformat()}"
    ]
    lines.extend(
        f"{label:<24}{delta.current:>8}  ({delta.change:+d})"
        for label, delta in summary.as_rows()
    )
    return lines


__all__ = ["render_activity_summary", "render_states", "render_transitions"]

"""Report structures returned by the cohort report service.

Reports are lists of msgspec structs. Encoding them with
``encode_report`` yields byte-identical JSON for identical inputs, which is
what the report cache stores.
"""

from __future__ import annotations

import datetime as dt  # noqa: TC003
import enum
import typing as typ

import msgspec


class ReportKind(enum.StrEnum):
    """The two public cohort reports."""

    STATES = "states"
    TRANSITIONS = "transitions"


class StatesSummaryEntry(msgspec.Struct, frozen=True):
    """User counts per lifecycle state for one window.

    ``date`` is the window start.
    """

    date: dt.date
    states: dict[str, int]


class TransitionsEntry(msgspec.Struct, frozen=True):
    """Transition label counts between two adjacent windows.

    ``date`` is the boundary between the pair (the earlier window's end).
    """

    date: dt.date
    transitions: dict[str, int]


type StatesReport = list[StatesSummaryEntry]
type TransitionsReport = list[TransitionsEntry]
type CohortReport = StatesReport | TransitionsReport

_ENTRY_TYPES: dict[ReportKind, type[msgspec.Struct]] = {
    ReportKind.STATES: StatesSummaryEntry,
    ReportKind.TRANSITIONS: TransitionsEntry,
}

_encoder = msgspec.json.Encoder()


def encode_report(report: typ.Sequence[msgspec.Struct]) -> bytes:
    """Encode a report as compact JSON."""
    return _encoder.encode(list(report))


def decode_report(kind: ReportKind, payload: bytes) -> list[typ.Any]:
    """Decode a cached payload back into report entries."""
    return msgspec.json.decode(payload, type=list[_ENTRY_TYPES[kind]])


def as_plain(report: typ.Sequence[msgspec.Struct]) -> list[dict[str, typ.Any]]:
    """Return the report as plain dicts with ISO date strings."""
    return typ.cast("list[dict[str, typ.Any]]", msgspec.to_builtins(list(report)))


__all__ = [
    "CohortReport",
    "ReportKind",
    "StatesReport",
    "StatesSummaryEntry",
    "TransitionsEntry",
    "TransitionsReport",
    "as_plain",
    "decode_report",
    "encode_report",
]
